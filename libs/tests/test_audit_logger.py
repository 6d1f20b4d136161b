import logging

import pytest

from common.storage import MemStorage
from libs.audit_logger import write_audit

pytestmark = pytest.mark.unit


def test_write_audit_appends_record():
    storage = MemStorage()

    record = write_audit(
        storage=storage, event_type=" authentication ", message="martha logged in", user_id=1
    )

    assert storage.audit_logs == [record]
    assert record["log_id"] == 1
    assert record["event_type"] == "authentication"
    assert record["user_id"] == 1
    assert record["event_id"] is None


def test_blank_message_is_replaced():
    storage = MemStorage()
    assert write_audit(storage=storage, event_type="system", message="  ")["message"] == "(no message)"


def test_emergency_logged_as_warning(caplog):
    storage = MemStorage()

    with caplog.at_level(logging.INFO, logger="libs.audit_logger"):
        write_audit(storage=storage, event_type="emergency", message="help", user_id=3, event_id=9)

    assert caplog.records[-1].levelno == logging.WARNING


def test_unknown_event_type_still_recorded(caplog):
    storage = MemStorage()

    with caplog.at_level(logging.WARNING, logger="libs.audit_logger"):
        write_audit(storage=storage, event_type="mystery", message="x")

    assert storage.audit_logs[0]["event_type"] == "mystery"
    assert "Unknown audit event_type" in caplog.text
