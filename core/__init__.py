"""
Core shared utilities for the garage API.

- db: dialect-adapting database access (MySQL source dialect, PostgreSQL target)
- errors: typed API errors and Flask handlers
- audit: security audit trail
- async_utils / scheduler: background event loop and maintenance jobs
"""

from .audit import AuditLevel, audit_log, clear_audit_log, get_audit_log
from .errors import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    DatabaseError,
    ValidationError,
)
