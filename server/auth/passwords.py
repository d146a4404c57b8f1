"""
Password hashing, verification and validation.

Handles:
- Password hashing (werkzeug)
- Password verification, blocking and off-loop
- Password strength validation
"""
import asyncio
import logging
import re

from werkzeug.security import check_password_hash, generate_password_hash

from .config import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    PASSWORD_REQUIRE_DIGIT,
    PASSWORD_REQUIRE_LOWERCASE,
    PASSWORD_REQUIRE_SPECIAL,
    PASSWORD_REQUIRE_UPPERCASE,
)

logger = logging.getLogger(__name__)

_SPECIAL_CHARS = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?]""")

__all__ = [
    "hash_password",
    "verify_password",
    "verify_password_async",
    "validate_password_strength",
]


def hash_password(password: str) -> str:
    """Hash a password with werkzeug's default (salted) scheme."""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash. Never raises.

    Args:
        password: Plain text password
        password_hash: Stored hash to check against

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    if not password or not password_hash:
        return False
    try:
        return check_password_hash(password_hash, password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Password hash check failed: {e}")
        return False


async def verify_password_async(password: str, password_hash: str) -> bool:
    """verify_password in a worker thread; hashing is CPU bound."""
    return await asyncio.to_thread(verify_password, password, password_hash)


def validate_password_strength(password: str) -> tuple[bool, str]:
    """Validate password meets complexity requirements.

    Returns:
        (is_valid, error_message) tuple
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters"

    if len(password) > PASSWORD_MAX_LENGTH:
        return False, f"Password must be at most {PASSWORD_MAX_LENGTH} characters"

    if PASSWORD_REQUIRE_UPPERCASE and not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if PASSWORD_REQUIRE_LOWERCASE and not re.search(r"[a-z]", password):
        return False, "Password must contain at least one lowercase letter"

    if PASSWORD_REQUIRE_DIGIT and not re.search(r"\d", password):
        return False, "Password must contain at least one digit"

    if PASSWORD_REQUIRE_SPECIAL and not _SPECIAL_CHARS.search(password):
        return False, "Password must contain at least one special character"

    return True, ""
