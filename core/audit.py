"""
Security audit trail for authentication and authorization decisions.

Entries go to the ``core.audit`` logger (HIGH and CRITICAL at WARNING) and
into a bounded in-memory ring that the admin audit endpoint reads.

Usage:
    from core.audit import AuditLevel, audit_log, get_audit_log

    audit_log("AUTH_FAILURE", user_id=None, details={"reason": "No token provided"},
              level=AuditLevel.HIGH, ip="10.0.0.5")
    recent = get_audit_log(limit=20)
"""

import logging
import os
import re
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

MAX_ENTRIES = 500

ENABLE_AUDIT_REDACTION = os.getenv("ENABLE_AUDIT_REDACTION", "true").lower() == "true"
REDACTED = "***REDACTED***"

_SENSITIVE_KEY_RE = re.compile(r"password|passwd|token|secret", re.IGNORECASE)


class AuditLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def _redact(value: Any) -> Any:
    """Replace values stored under sensitive keys, recursively."""
    if not ENABLE_AUDIT_REDACTION:
        return value
    if isinstance(value, dict):
        return {
            k: REDACTED if _SENSITIVE_KEY_RE.search(str(k)) else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


class AuditTrail:
    """Bounded ring of audit entries, safe to share across request threads."""

    def __init__(self, max_entries: int = MAX_ENTRIES):
        self._entries: deque = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(
        self,
        action: str,
        user_id: Optional[Any] = None,
        details: Optional[dict] = None,
        level: AuditLevel = AuditLevel.MEDIUM,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        """
        Append an entry and emit it on the audit logger.

        Args:
            action: AUTH_SUCCESS, AUTH_FAILURE, ROLE_ACCESS, ACCESS_DENIED, LOGIN, ...
            user_id: Employee id, when known
            details: Free-form context; sensitive keys are redacted
            level: Severity of the event
            ip: Caller address
            user_agent: Caller user agent

        Returns:
            The stored entry
        """
        level = AuditLevel(level)
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "user_id": user_id,
            "details": _redact(details or {}),
            "level": level.value,
            "ip": ip,
            "user_agent": user_agent,
        }
        with self._lock:
            self._entries.append(entry)

        log_level = logging.WARNING if level in (AuditLevel.HIGH, AuditLevel.CRITICAL) else logging.INFO
        logger.log(log_level, f"AUDIT {action} user={user_id}", extra={"audit": entry})
        return entry

    def entries(self, limit: int = 50, action: Optional[str] = None) -> list[dict]:
        """Most recent entries first."""
        with self._lock:
            entries = list(self._entries)
        if action:
            entries = [e for e in entries if e["action"] == action]
        return list(reversed(entries[-limit:])) if limit > 0 else []

    def clear(self):
        with self._lock:
            self._entries.clear()


audit_trail = AuditTrail()


def audit_log(action, user_id=None, details=None, level=AuditLevel.MEDIUM, ip=None, user_agent=None) -> dict:
    """Record an audit entry on the process-wide trail."""
    return audit_trail.record(action, user_id, details, level, ip, user_agent)


def get_audit_log(limit: int = 50, action: Optional[str] = None) -> list[dict]:
    return audit_trail.entries(limit, action)


def clear_audit_log() -> None:
    audit_trail.clear()
