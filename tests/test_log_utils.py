"""Tests for redaction and structured event logging."""

from __future__ import annotations

import logging

import pytest

from nexus_stream_toolkit.log_utils import (
    MAX_DEPTH,
    REDACTED,
    RedactingFilter,
    log_event,
    redact_string,
    sanitize_for_log,
)


class TestRedaction:
    @pytest.mark.parametrize(
        "secret",
        [
            "Bearer abc.def-123",
            "sk-proj-abcdefgh1234",
            "gsk_abcdefgh1234",
            "sk-ant-api03-abcdefgh",
            "AIzaSyAbcdefgh12345",
            "xai-abcdefgh1234",
        ],
    )
    def test_known_credential_shapes(self, secret: str) -> None:
        redacted = redact_string(f"header: {secret} trailing")
        assert secret not in redacted
        assert REDACTED in redacted
        assert redacted.endswith("trailing")

    def test_truncation(self) -> None:
        assert redact_string("x" * 12, max_length=10) == "xxxxxxxxxx...[truncated 2 chars]"
        assert redact_string("short", max_length=10) == "short"

    def test_sensitive_keys_are_masked(self) -> None:
        data = {
            "apiKey": "plain",
            "Authorization": "Bearer abc",
            "refresh_token": "r",
            "nested": {"password": "p", "content": "hello"},
            "items": [{"secret": 1}, "sk-abcdefghijk"],
            "count": 3,
        }
        assert sanitize_for_log(data) == {
            "apiKey": REDACTED,
            "Authorization": REDACTED,
            "refresh_token": REDACTED,
            "nested": {"password": REDACTED, "content": "hello"},
            "items": [{"secret": REDACTED}, REDACTED],
            "count": 3,
        }

    def test_depth_is_capped(self) -> None:
        value: dict = {}
        cursor = value
        for _ in range(MAX_DEPTH + 2):
            cursor["next"] = {}
            cursor = cursor["next"]
        sanitized = sanitize_for_log(value)
        for _ in range(MAX_DEPTH):
            sanitized = sanitized["next"]
        assert sanitized["next"] == "[TRUNCATED]"


def test_log_event_record(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="nexus_stream_toolkit.events"):
        log_event("assistant_error", {"error": "boom", "token": "t"}, level="error")

    (record,) = caplog.records
    assert record.levelno == logging.ERROR
    assert record.event == "assistant_error"
    assert record.data == {"error": "boom", "token": REDACTED}
    assert record.getMessage().startswith("assistant_error {")


def test_log_event_never_raises(caplog: pytest.LogCaptureFixture) -> None:
    class Unprintable:
        def __str__(self) -> str:
            raise RuntimeError("no")

    with caplog.at_level(logging.INFO, logger="nexus_stream_toolkit.events"):
        log_event("weird", {"value": Unprintable()})


def test_redacting_filter() -> None:
    record = logging.LogRecord(
        "x", logging.INFO, __file__, 1, "calling with %s", ("sk-abcdefghijk",), None
    )
    assert RedactingFilter().filter(record)
    assert "sk-abcdefghijk" not in record.getMessage()
