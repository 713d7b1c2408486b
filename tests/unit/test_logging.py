"""
Tests for the JSON log formatter and the per-request log context.
"""
import json
import logging

import pytest

from loyalty_ledger.lib.logging import (
    ContextFilter,
    JSONFormatter,
    TEXT_FORMAT,
    bind_log_context,
    clear_log_context,
    current_log_context,
    log_with_context,
)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []
    
    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = logging.getLogger("loyalty_ledger.tests.logging")
    handler = ListHandler()
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    clear_log_context()
    yield logger, handler
    logger.removeHandler(handler)
    clear_log_context()


@pytest.mark.unit
def test_json_formatter_includes_context_and_extra_fields(captured):
    logger, handler = captured
    bind_log_context(correlation_id="req-123", owner_id="shop-1")
    
    log_with_context(logger, "info", "Purchase recorded", created=True)
    
    payload = json.loads(JSONFormatter().format(handler.records[0]))
    assert payload["message"] == "Purchase recorded"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "loyalty_ledger.tests.logging"
    assert payload["correlation_id"] == "req-123"
    assert payload["owner_id"] == "shop-1"
    assert payload["created"] is True


@pytest.mark.unit
def test_context_is_captured_when_the_record_is_emitted(captured):
    logger, handler = captured
    bind_log_context(owner_id="shop-1")
    logger.info("inside request")
    clear_log_context()
    
    payload = json.loads(JSONFormatter().format(handler.records[0]))
    
    assert payload["owner_id"] == "shop-1"


@pytest.mark.unit
def test_json_formatter_without_context(captured):
    logger, handler = captured
    
    logger.warning("plain")
    
    payload = json.loads(JSONFormatter().format(handler.records[0]))
    assert "correlation_id" not in payload
    assert "owner_id" not in payload


@pytest.mark.unit
def test_bind_merges_and_skips_none():
    clear_log_context()
    try:
        bind_log_context(correlation_id="req-1")
        bind_log_context(owner_id="shop-1", phone=None)
        
        assert current_log_context() == {"correlation_id": "req-1", "owner_id": "shop-1"}
    finally:
        clear_log_context()


@pytest.mark.unit
def test_text_format_shows_correlation_id(captured):
    logger, handler = captured
    bind_log_context(correlation_id="req-9")
    logger.info("hello")
    record = handler.records[0]
    
    line = logging.Formatter(TEXT_FORMAT).format(record)
    
    assert "[req-9] hello" in line
    assert record.correlation_id == "req-9"


@pytest.mark.unit
def test_text_format_placeholder_without_correlation_id(captured):
    logger, handler = captured
    
    logger.info("background")
    
    assert handler.records[0].correlation_id == "-"
