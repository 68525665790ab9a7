from __future__ import annotations

import logging

import pytest

from homelink.util.logging import RedactionFilter
from homelink.util.security import issue_token, redact_secrets, scrub_sensitive, validate_identifier


def test_issued_tokens_are_redacted() -> None:
    token = issue_token("at")
    redacted = redact_secrets(f"authorized with {token}")
    assert token not in redacted
    assert "at-***" in redacted


def test_generic_secret_redaction() -> None:
    text = "password=myPass refresh_token=abc123"
    redacted = redact_secrets(text)
    assert "myPass" not in redacted
    assert "abc123" not in redacted


def test_scrub_sensitive_recursive() -> None:
    payload = {
        "note": "password=abc",
        "access_token": "at-123",
        "nested": {"secret": "123", "ok": "value"},
    }
    scrubbed = scrub_sensitive(payload)
    assert scrubbed["access_token"] == "***"
    assert scrubbed["nested"]["secret"] == "***"
    assert scrubbed["nested"]["ok"] == "value"
    assert "abc" not in scrubbed["note"]


def test_log_filter_scrubs_formatted_message() -> None:
    token = issue_token("rt")
    record = logging.LogRecord("homelink", logging.INFO, __file__, 1, "refreshing %s", (token,), None)
    assert RedactionFilter().filter(record) is True
    assert token not in record.getMessage()


def test_identifier_validation() -> None:
    assert validate_identifier("dev-0a1b2c") == "dev-0a1b2c"
    with pytest.raises(ValueError):
        validate_identifier("../../etc")
