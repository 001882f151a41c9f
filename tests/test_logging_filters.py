"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)


@pytest.fixture
def log_stream():
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()
    clear_request_id()


def test_redacts_api_keys_and_identities(log_stream):
    logger, stream = log_stream

    logger.info(
        "rate_limit.exceeded",
        extra={
            "api_key": "sk-secret-123",
            "identifier": "203.0.113.9",
            "x-forwarded-for": "198.51.100.7",
            "key_hash": "ab12cd34ef56ab78",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "203.0.113.9" not in output
    assert "198.51.100.7" not in output
    assert "[REDACTED]" in output
    assert "ab12cd34ef56ab78" in output


def test_safe_fields_pass_through(log_stream):
    logger, stream = log_stream

    logger.info(
        "rate_limit.allowed",
        extra={"operation": "meal_log", "limit": 100, "remaining": 99},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.allowed"
    assert record["operation"] == "meal_log"
    assert record["remaining"] == 99
    assert "[REDACTED]" not in stream.getvalue()


def test_redacts_nested_headers(log_stream):
    logger, stream = log_stream

    logger.info(
        "request_headers",
        extra={"headers": {"X-API-Key": "secret-key", "user-agent": "pytest"}},
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "pytest" in output


def test_request_id_attached_from_context(log_stream):
    logger, stream = log_stream
    set_request_id("req-123")

    logger.warning("rate_limit.fail_open")

    assert json.loads(stream.getvalue())["request_id"] == "req-123"
