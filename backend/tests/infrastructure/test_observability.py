"""Structured logging - JSON formatter fields and idempotent setup."""

import json
import logging
import sys

from spoolsync.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "spoolsync.services.sync_engine", logging.WARNING, __file__, 1,
        "Refresh of spool %d failed", (7,), None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_core_fields():
    payload = json.loads(JSONFormatter().format(_record()))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "spoolsync.services.sync_engine"
    assert payload["message"] == "Refresh of spool 7 failed"
    assert "timestamp" in payload
    assert "thread" in payload


def test_json_formatter_surfaces_known_extras_only():
    payload = json.loads(JSONFormatter().format(
        _record(entity_kind="spool", entity_id=7, attempt=2, unrelated="x"),
    ))

    assert payload["entity_kind"] == "spool"
    assert payload["entity_id"] == 7
    assert payload["attempt"] == 2
    assert "unrelated" not in payload


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JSONFormatter().format(record))
    assert "ValueError: boom" in payload["exception"]


def test_setup_logging_replaces_its_own_handler():
    first = setup_logging("DEBUG", "json")
    second = setup_logging("INFO", "text")
    try:
        assert first not in logging.root.handlers
        assert second in logging.root.handlers
        assert not isinstance(second.formatter, JSONFormatter)
        assert logging.root.level == logging.INFO
    finally:
        logging.root.removeHandler(second)
