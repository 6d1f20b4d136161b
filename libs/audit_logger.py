# libs/audit_logger.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from common.storage import MemStorage

logger = logging.getLogger(__name__)

ALLOWED_EVENT_TYPES = {
    "authentication",
    "status",
    "emergency",
    "check_in",
    "system",
}


def _normalize_event_type(event_type: str) -> str:
    et = (event_type or "").strip()
    if len(et) > 50:
        et = et[:50]
    return et


def write_audit(
    *,
    storage: MemStorage,
    event_type: str,
    message: str,
    user_id: Optional[int] = None,
    event_id: Optional[int] = None,
) -> dict:
    """
    Append an audit record to the repository's audit trail and log it.

    Args:
        storage: repository that owns the audit trail
        event_type: authentication / emergency / check_in / ...
        message: human-readable message
        user_id: who triggered the event (nullable)
        event_id: affected row id (status update id, check-in id, ...)

    Returns:
        The stored audit record
    """
    et = _normalize_event_type(event_type)
    if et not in ALLOWED_EVENT_TYPES:
        logger.warning("Unknown audit event_type '%s', still logging.", et)

    msg = (message or "").strip() or "(no message)"

    record = {
        "log_id": len(storage.audit_logs) + 1,
        "event_type": et,
        "user_id": user_id,
        "event_id": event_id,
        "message": msg,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    storage.audit_logs.append(record)

    level = logging.WARNING if et == "emergency" else logging.INFO
    logger.log(level, "audit[%s] user_id=%s event_id=%s: %s", et, user_id, event_id, msg)
    return record
