"""Tests for the RequestLog record and its mutation API."""

import time
from datetime import UTC, datetime

import pytest

from reqlog.errors import RequestLogError
from reqlog.record import PanicDetails, RequestLog


@pytest.fixture
def record() -> RequestLog:
    return RequestLog(uri="/login", method="GET", client_ip="10.0.0.1")


class TestCreation:
    """Tests for a freshly created RequestLog."""

    def test_containers_start_empty(self, record):
        """Reads of never-written containers see empty ones, not None."""
        assert record.logs == []
        assert record.details == {}
        assert record.panic is None

    def test_request_time_is_utc_now(self):
        before = datetime.now(UTC)
        record = RequestLog(uri="/", method="GET")
        after = datetime.now(UTC)

        assert record.request_time.tzinfo is not None
        assert before <= record.request_time <= after

    def test_not_finalized(self, record):
        assert record.finalized is False
        assert record.response_status == 0
        assert record.duration_ms == 0

    def test_records_do_not_share_containers(self):
        """Verifies each record gets its own logs list and details dict.

        Arrangement:
        1. Two records created with defaults.

        Action:
        Mutates the first record only.

        Assertion Strategy:
        The second record stays empty, proving the default factories
        allocate per instance rather than sharing one mutable default.
        """
        first = RequestLog(uri="/a", method="GET")
        second = RequestLog(uri="/b", method="GET")

        first.append_log("hello")
        first.set_detail("k", 1)

        assert second.logs == []
        assert second.details == {}


class TestAppendLog:
    """Tests for RequestLog.append_log."""

    def test_first_append_yields_single_entry(self, record):
        """The first note is the only entry; there is no leading blank line."""
        record.append_log("started")
        assert record.logs == ["started"]

    def test_printf_style_formatting(self, record):
        record.append_log("user %s has %d items", "bob", 3)
        assert record.logs == ["user bob has 3 items"]

    def test_order_is_preserved(self, record):
        for step in ("auth", "load", "render"):
            record.append_log("step %s", step)
        assert record.logs == ["step auth", "step load", "step render"]

    def test_no_args_uses_text_verbatim(self, record):
        """A lone percent sign is fine when nothing is substituted."""
        record.append_log("100% done")
        assert record.logs == ["100% done"]

    def test_mismatched_args_render_literally(self, record):
        """Verifies bad formats never raise and keep the information.

        Arrangement:
        1. Format expects an integer, argument is a string.

        Action:
        Calls append_log with the mismatched pair.

        Assertion Strategy:
        - No exception escapes.
        - The appended text holds both the format and the argument.
        """
        record.append_log("count=%d", "many")

        assert len(record.logs) == 1
        assert "count=%d" in record.logs[0]
        assert "many" in record.logs[0]

    def test_too_few_args_render_literally(self, record):
        record.append_log("%s and %s", "one")
        assert record.logs[0].startswith("%s and %s")

    def test_non_string_format(self, record):
        record.append_log(42)
        assert record.logs == ["42"]


class TestSetDetail:
    """Tests for RequestLog.set_detail."""

    def test_set_on_fresh_record(self, record):
        record.set_detail("authReason", "bad password")
        assert record.details == {"authReason": "bad password"}

    def test_second_write_wins(self, record):
        record.set_detail("authReason", "bad password")
        record.set_detail("user", "bob")
        record.set_detail("authReason", "password ok")

        assert record.details["authReason"] == "password ok"
        assert record.details["user"] == "bob"
        assert len(record.details) == 2

    def test_accepts_unserializable_values(self, record):
        """Serializability is only checked at emission time."""
        loop: dict = {}
        loop["self"] = loop
        record.set_detail("loop", loop)
        assert record.details["loop"] is loop


class TestFinalize:
    """Tests for the single finalization point."""

    def test_sets_status_and_duration(self):
        record = RequestLog(uri="/", method="GET", started_at=100.0)
        record.finalize(201, now=100.25)

        assert record.response_status == 201
        assert record.duration_ms == 250
        assert record.finalized is True

    def test_duration_defaults_to_elapsed_time(self, record):
        time.sleep(0.02)
        record.finalize(200)
        assert record.duration_ms >= 10

    def test_duration_never_negative(self):
        record = RequestLog(uri="/", method="GET", started_at=100.0)
        record.finalize(200, now=99.0)
        assert record.duration_ms == 0

    def test_second_finalize_raises(self, record):
        record.finalize(200)
        with pytest.raises(RequestLogError, match="already finalized"):
            record.finalize(500)
        assert record.response_status == 200


class TestAttachPanic:
    """Tests for RequestLog.attach_panic."""

    def test_attach_once(self, record):
        details = PanicDetails(descriptor="boom", prior_status=200, stack_trace="tb")
        record.attach_panic(details)
        assert record.panic is details

    def test_attach_twice_raises(self, record):
        record.attach_panic(PanicDetails("first", 200, ""))
        with pytest.raises(RequestLogError, match="already has panic details"):
            record.attach_panic(PanicDetails("second", 200, ""))
        assert record.panic.descriptor == "first"

    def test_panic_details_are_immutable(self):
        details = PanicDetails("boom", 200, "")
        with pytest.raises(AttributeError):
            details.prior_status = 404


class TestToDict:
    """Tests for the JSON-shaped mapping."""

    def test_minimal_record_omits_optional_fields(self, record):
        record.finalize(200)
        data = record.to_dict()

        assert list(data) == ["uri", "method", "status", "time", "duration", "ip"]
        assert data["uri"] == "/login"
        assert data["method"] == "GET"
        assert data["status"] == 200
        assert data["ip"] == "10.0.0.1"

    def test_full_record(self, record):
        record.append_log("note")
        record.set_detail("k", "v")
        record.attach_panic(PanicDetails("boom", 404, "trace"))

        data = record.to_dict()

        assert data["logs"] == ["note"]
        assert data["details"] == {"k": "v"}
        assert data["error"] == {"desc": "boom", "oldStatus": 404, "stackTrace": "trace"}

    def test_logs_are_copied(self, record):
        record.append_log("note")
        data = record.to_dict()
        record.append_log("later")
        assert data["logs"] == ["note"]
