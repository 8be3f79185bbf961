"""Line sinks for emitted request logs.

The sink is the only state shared between requests. Each document must
land as one newline-terminated unit so concurrent requests never
interleave inside each other's output.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import IO, Protocol, runtime_checkable


@runtime_checkable
class LineSink(Protocol):
    """Anything that can write one complete log document."""

    def write_line(self, line: str) -> None:
        """Write ``line`` followed by a newline as a single unit."""
        ...  # pragma: no cover


class StreamSink:
    """Write documents to a text stream, one locked write per document.

    Args:
        stream: Text stream to write to. Default: sys.stdout, resolved at
            write time so pytest's capsys and redirect_stdout keep working.

    Example:
        >>> sink = StreamSink(io.StringIO())
        >>> sink.write_line('{"uri": "/"}')
    """

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> IO[str]:
        """The target stream; sys.stdout is looked up at each write."""
        return self._stream if self._stream is not None else sys.stdout

    def write_line(self, line: str) -> None:
        """Write ``line`` plus a newline in one call, then flush.

        Args:
            line: One encoded request log, without trailing newline.
        """
        with self._lock:
            stream = self.stream
            stream.write(line + "\n")
            stream.flush()


class LoggerSink:
    """Forward documents to a standard logging.Logger.

    Useful when the host application already routes its output through
    logging handlers. Handlers serialize their own writes, so no extra
    locking is needed here.

    Args:
        logger: Destination logger, or a logger name.
        level: Level each document is logged at.
    """

    def __init__(
        self, logger: logging.Logger | str = "request_log", level: int = logging.INFO
    ) -> None:
        if isinstance(logger, str):
            logger = logging.getLogger(logger)
        self.logger = logger
        self.level = level

    def write_line(self, line: str) -> None:
        """Log ``line`` verbatim at the configured level."""
        self.logger.log(self.level, "%s", line)


__all__ = ["LineSink", "LoggerSink", "StreamSink"]
