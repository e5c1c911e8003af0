import json
import logging
import os
from datetime import datetime

from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from revshare.main import app  # noqa: E402
from revshare.core.logging import JsonLogFormatter  # noqa: E402


def _record(msg, **extra):
    record = logging.LogRecord("revshare.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    payload = json.loads(
        JsonLogFormatter().format(
            _record("payout.transfer_paid", transfer_record_id=7, completed_at=datetime(2026, 2, 1, 9, 30))
        )
    )
    assert payload["message"] == "payout.transfer_paid"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "revshare.test"
    assert payload["transfer_record_id"] == 7
    assert payload["completed_at"] == "2026-02-01T09:30:00"


def test_json_formatter_drops_empty_optional_fields():
    payload = json.loads(JsonLogFormatter().format(_record("x", note=None, error_code=None)))
    assert "note" not in payload
    assert payload["error_code"] is None


def test_request_completed_is_logged_with_route(caplog):
    logger = logging.getLogger("api_logger")
    logger.addHandler(caplog.handler)
    logger.setLevel(logging.INFO)
    try:
        client = TestClient(app)
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.status_code == 200
        assert response.headers.get("X-Request-ID") == "req-123"

        records = [rec for rec in caplog.records if rec.getMessage() == "request.completed"]
        assert records, "Expected a structured request log entry"
        entry = records[-1]
        assert getattr(entry, "route", None) == "/health"
        assert getattr(entry, "method", None) == "GET"
        assert getattr(entry, "status_code", None) == 200
        assert getattr(entry, "trace_id", None) == "req-123"
    finally:
        logger.removeHandler(caplog.handler)
