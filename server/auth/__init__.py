"""
Garage authentication module.

Public API:
- Decorators: token_required, role_required, require_role
- Authority: SessionAuthority, LoginResult, RefreshResult
- Tokens: TokenIssuer
- Sessions: SessionStore, InMemorySessionStore, RedisSessionStore
- Directory: UserDirectory, EmployeeDirectory
- Passwords: hash_password, verify_password, validate_password_strength

Import Rules:
- External callers: Use `from server.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
"""

from .authority import LoginResult, RefreshResult, SessionAuthority
from .config import ROLE_NAMES, Role
from .decorators import has_role, require_role, role_required, token_required
from .directory import EmployeeDirectory, UserDirectory
from .passwords import hash_password, validate_password_strength, verify_password
from .sessions import InMemorySessionStore, RedisSessionStore, SessionStore, create_session_store
from .tokens import TokenIssuer
from .types import Principal, Session, UserRecord

__all__ = [
    # Decorators
    "token_required",
    "role_required",
    "require_role",
    "has_role",

    # Authority
    "SessionAuthority",
    "LoginResult",
    "RefreshResult",
    "TokenIssuer",

    # Sessions
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "create_session_store",

    # Directory
    "UserDirectory",
    "EmployeeDirectory",

    # Passwords
    "hash_password",
    "verify_password",
    "validate_password_strength",

    # Types
    "Principal",
    "Session",
    "UserRecord",
    "Role",
    "ROLE_NAMES",
]
