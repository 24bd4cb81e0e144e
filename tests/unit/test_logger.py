"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from scopekeeper.core.logger import JSONFormatter, ScopeContextFilter, configure_logging
from scopekeeper.uow import ScopeFactory
from tests.helpers.fakes import FakeResourceFactory


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("scopekeeper.test", logging.INFO, __file__, 1, message, None, None)


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    # Act
    configure_logging("DEBUG")

    # Assert
    assert logging.getLogger().level == logging.DEBUG


def test_filter_stamps_ambient_scope() -> None:
    record = _record()
    ScopeContextFilter().filter(record)
    assert record.scope_id is None
    assert record.scope_depth == 0

    scopes = ScopeFactory(FakeResourceFactory())
    with scopes.create() as outer, scopes.create():
        record = _record()
        ScopeContextFilter().filter(record)
    assert record.scope_depth == 2
    assert record.scope_id != outer.id


def test_json_formatter_payload() -> None:
    record = _record("committed %d")
    record.args = (3,)
    record.scope_id = "abc"
    record.resource_key = "reporting"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "committed 3"
    assert payload["level"] == "INFO"
    assert payload["scope_id"] == "abc"
    assert payload["resource_key"] == "reporting"
    assert "elapsed_ms" not in payload
