from __future__ import annotations

import logging

import workstack.telemetry.logging as wlog
from workstack.telemetry.logging import get_logger


def test_module_documents_log_level_variable():
    assert wlog.__doc__ is not None
    assert "WORKSTACK_LOG_LEVEL" in wlog.__doc__


def test_context_is_prefixed(caplog):
    log = get_logger("workstack.test", {"id": "rank_3"})
    with caplog.at_level(logging.INFO, logger="workstack.test"):
        log.info("hello")
    assert caplog.records[-1].getMessage() == "[id=rank_3] hello"


def test_plain_logger_without_context():
    assert isinstance(get_logger("workstack.plain"), logging.Logger)
