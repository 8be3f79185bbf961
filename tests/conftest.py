"""Pytest configuration and fixtures for reqlog tests.

Every test gets reqlog's diagnostics logger redirected to an in-memory
buffer, so warnings about dropped details or last-resort output can be
asserted on, and a RecordingSink capturing emitted request logs.
"""

import io
import json
from typing import Any

import pytest

from reqlog.observability import configure_logging, reset_logging


class RecordingSink:
    """LineSink keeping every written document in memory."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def write_line(self, line: str) -> None:
        self.lines.append(line)

    @property
    def documents(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.lines]

    def only(self) -> dict[str, Any]:
        """Return the single emitted document, failing if there isn't exactly one."""
        assert len(self.lines) == 1, f"expected one request log, got {len(self.lines)}"
        return json.loads(self.lines[0])


@pytest.fixture(autouse=True)
def diagnostics():
    """Capture reqlog's own diagnostics for the duration of a test.

    Yields:
        io.StringIO receiving JSON-formatted diagnostics, one per line.
    """
    buffer = io.StringIO()
    configure_logging(level="DEBUG", json_format=True, stream=buffer, force=True)
    yield buffer
    reset_logging()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


def diagnostic_records(buffer: io.StringIO) -> list[dict[str, Any]]:
    """Parse the diagnostics captured by the ``diagnostics`` fixture."""
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line]


@pytest.fixture
def read_diagnostics(diagnostics):
    """Callable returning the diagnostics logged so far as dicts."""
    return lambda: diagnostic_records(diagnostics)
