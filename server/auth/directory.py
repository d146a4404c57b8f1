"""
Employee lookup for authentication.

Queries are written in the source dialect (backticks, ``?``) and run
through the DatabaseAdapter, which translates them for PostgreSQL.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .passwords import verify_password_async
from .types import UserRecord

logger = logging.getLogger(__name__)

_EMPLOYEE_SELECT = """
    SELECT
        ce.`employee_id`, ce.`employee_email`, ce.`employee_first_name`,
        ce.`employee_password_hashed`, ce.`company_role_id`, ce.`active_employee`,
        cr.`company_role_name`
    FROM `company_employees` ce
    INNER JOIN `company_roles` cr ON ce.`company_role_id` = cr.`company_role_id`
"""

EMPLOYEE_BY_EMAIL_SQL = _EMPLOYEE_SELECT + "WHERE ce.`employee_email` = ? AND ce.`active_employee` = 1"
EMPLOYEE_BY_ID_SQL = _EMPLOYEE_SELECT + "WHERE ce.`employee_id` = ? AND ce.`active_employee` = 1"


class UserDirectory(ABC):
    """Source of employee identities for the session authority."""

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def get_user_by_id(self, employee_id: int) -> Optional[UserRecord]:
        ...

    async def verify_password(self, plain: str, password_hash: str) -> bool:
        """Check a password off the event loop. Never raises."""
        try:
            return await verify_password_async(plain, password_hash)
        except Exception as e:
            logger.error(f"Password verification error: {e}")
            return False


def _row_to_user(row: dict) -> UserRecord:
    return UserRecord(
        employee_id=int(row["employee_id"]),
        email=row["employee_email"],
        password_hash=row["employee_password_hashed"],
        role=int(row["company_role_id"]),
        first_name=row.get("employee_first_name") or "",
        active=bool(row.get("active_employee", 1)),
    )


class EmployeeDirectory(UserDirectory):
    """Active employees from the garage database."""

    def __init__(self, adapter):
        self._adapter = adapter

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        rows = await self._adapter.query(EMPLOYEE_BY_EMAIL_SQL, (email,))
        return _row_to_user(rows[0]) if rows else None

    async def get_user_by_id(self, employee_id: int) -> Optional[UserRecord]:
        rows = await self._adapter.query(EMPLOYEE_BY_ID_SQL, (employee_id,))
        return _row_to_user(rows[0]) if rows else None
