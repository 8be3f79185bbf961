"""Middleware configuration.

Defaults reproduce the classic behaviour: the record is published under
``request.state.jrl``, documents are indented with four spaces and a
crashed request answers ``500 {"error": "Internal error"}``.

A few settings can be overridden from the environment, which is handy
for switching to compact single-line output in production:

    REQLOG_STATE_KEY        request.state attribute holding the record
    REQLOG_INDENT           indent width, or "none"/"" for single-line JSON
    REQLOG_TRUST_FORWARDED  1/true/yes/on to honour X-Forwarded-For
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

DEFAULT_STATE_KEY = "jrl"
DEFAULT_INDENT = 4
DEFAULT_ERROR_STATUS = 500
DEFAULT_STATUS = 200

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _default_error_body() -> dict[str, Any]:
    return {"error": "Internal error"}


@dataclass(frozen=True)
class ReqlogConfig:
    """Settings for RequestLogMiddleware.

    Attributes:
        state_key: Name under which the RequestLog is stored in the request
            state (``request.state.<state_key>``).
        indent: JSON indentation of emitted documents; None for one line.
        error_status: Status forced on the response when a handler crashes.
        error_body: JSON body sent with ``error_status``. Never contains the
            crash payload.
        default_status: Status assumed when the app has not started a
            response (reported as ``error.oldStatus`` on a crash, and as the
            final status if the app returns without responding).
        trust_forwarded: Resolve the client address from X-Forwarded-For /
            X-Real-IP. Enable only behind a proxy that sets them.
    """

    state_key: str = DEFAULT_STATE_KEY
    indent: int | None = DEFAULT_INDENT
    error_status: int = DEFAULT_ERROR_STATUS
    error_body: Mapping[str, Any] = field(default_factory=_default_error_body)
    default_status: int = DEFAULT_STATUS
    trust_forwarded: bool = False

    def __post_init__(self) -> None:
        if not self.state_key:
            raise ValueError("state_key must not be empty")
        if self.indent is not None and self.indent < 0:
            raise ValueError(f"indent must be >= 0 or None, got {self.indent}")
        if not 100 <= self.error_status <= 599:
            raise ValueError(f"error_status must be an HTTP status, got {self.error_status}")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> ReqlogConfig:
        """Build a config from REQLOG_* variables, then apply ``overrides``.

        Args:
            environ: Mapping to read instead of os.environ (for tests).
            **overrides: Field values that win over the environment.

        Raises:
            ValueError: If a variable holds an unparseable value.

        Example:
            >>> ReqlogConfig.from_env({"REQLOG_INDENT": "none"}).indent is None
            True
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if "REQLOG_STATE_KEY" in env:
            values["state_key"] = env["REQLOG_STATE_KEY"]
        if "REQLOG_INDENT" in env:
            values["indent"] = _parse_indent(env["REQLOG_INDENT"])
        if "REQLOG_TRUST_FORWARDED" in env:
            values["trust_forwarded"] = _parse_bool(
                "REQLOG_TRUST_FORWARDED", env["REQLOG_TRUST_FORWARDED"]
            )

        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> ReqlogConfig:
        """Return a copy with the given fields replaced."""
        if not overrides:
            return self
        return replace(self, **overrides)


def _parse_indent(raw: str) -> int | None:
    value = raw.strip().lower()
    if value in ("", "none"):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"REQLOG_INDENT must be an integer or 'none', got {raw!r}"
        ) from None


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


__all__ = ["ReqlogConfig"]
