"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_api_keys():
    logger, stream = _capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_caller_identifiers():
    """Raw session ids, subject ids, addresses and subjects never reach the sink."""
    logger, stream = _capture("test_identity_redaction")

    logger.info(
        "rate_limit.allowed",
        extra={
            "session_id": "3b1f6c1e-0000-4000-8000-000000000001",
            "subject_id": "user-42",
            "ip_address": "203.0.113.7",
            "subject": "my secret topic",
            "remaining": 1,
        },
    )

    output = stream.getvalue()
    assert "3b1f6c1e" not in output
    assert "user-42" not in output
    assert "203.0.113.7" not in output
    assert "my secret topic" not in output
    assert json.loads(output)["remaining"] == 1


def test_hashed_identifiers_pass_through():
    logger, stream = _capture("test_identity_hash")
    digest = hash_identifier("user-42")

    logger.info("rate_limit.exceeded", extra={"identity_hash": digest, "tier": "authenticated"})

    record = json.loads(stream.getvalue())
    assert record["identity_hash"] == digest
    assert len(digest) == 16
    assert "[REDACTED]" not in stream.getvalue()


def test_hash_identifier_is_stable():
    assert hash_identifier("abc") == hash_identifier("abc")
    assert hash_identifier("abc") != hash_identifier("abd")


def test_sensitive_filter_redacts_nested_dicts():
    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-api-key": "secret-key",
                "cookie": "anyzine_session=abc",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "anyzine_session=abc" not in output
    assert "pytest" in output


def test_request_id_is_attached():
    logger, stream = _capture("test_request_id")

    set_request_id("req-123")
    try:
        logger.info("with_request_id")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"
