from __future__ import annotations

import json
import logging

from webevidence.services.logger import log_event, log_provider_call


def _payload(record: logging.LogRecord, prefix: str) -> dict:
    message = record.getMessage()
    assert message.startswith(prefix)
    return json.loads(message[len(prefix):])


def test_log_event_emits_json(caplog):
    with caplog.at_level(logging.DEBUG, logger="webevidence"):
        log_event("harvest_skipped", "disallowed by robots.txt", level=logging.DEBUG, url="https://example.com")

    data = _payload(caplog.records[-1], "EVENT: ")
    assert data["event_type"] == "harvest_skipped"
    assert data["url"] == "https://example.com"
    assert caplog.records[-1].levelno == logging.DEBUG


def test_failed_provider_call_logs_a_warning(caplog):
    with caplog.at_level(logging.INFO, logger="webevidence"):
        log_provider_call("exa", "search", status="error", duration_ms=12, error="TimeoutError()")

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    data = _payload(record, "PROVIDER_CALL: ")
    assert data["provider"] == "exa"
    assert data["error"] == "TimeoutError()"
