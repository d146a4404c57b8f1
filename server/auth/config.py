"""
Auth configuration constants - no dependencies on other auth modules.

Values are sourced from config.settings (Pydantic BaseSettings). The JWT
secret is not exported here; services read it from settings
when building the TokenIssuer.
"""
from enum import IntEnum

from config.settings import get_settings

_settings = get_settings()
_auth = _settings.auth
_sessions = _settings.sessions

# =============================================================================
# Roles (company_roles.company_role_id)
# =============================================================================


class Role(IntEnum):
    EMPLOYEE = 1
    MANAGER = 2
    ADMIN = 3


ROLE_NAMES = {
    Role.EMPLOYEE: "Employee",
    Role.MANAGER: "Manager",
    Role.ADMIN: "Admin",
}

# =============================================================================
# Token Configuration
# =============================================================================

JWT_ALGORITHM = _auth.jwt_algorithm
JWT_ISSUER = _auth.jwt_issuer
JWT_AUDIENCE = _auth.jwt_audience
ACCESS_TOKEN_EXPIRY_SECONDS = _auth.access_token_expiry_seconds
REFRESH_TOKEN_BYTES = _auth.refresh_token_bytes
SESSION_ID_BYTES = _auth.session_id_bytes

# Request headers
ACCESS_TOKEN_HEADER = "x-access-token"
SESSION_ID_HEADER = "x-session-id"

# =============================================================================
# Session Configuration
# =============================================================================

MAX_SESSIONS_PER_USER = _sessions.max_per_user
SESSION_TIMEOUT_SECONDS = _sessions.timeout_minutes * 60

# =============================================================================
# Password Policy Configuration
# =============================================================================

PASSWORD_MIN_LENGTH = _auth.password_min_length
PASSWORD_MAX_LENGTH = _auth.password_max_length
PASSWORD_REQUIRE_UPPERCASE = _auth.password_require_uppercase
PASSWORD_REQUIRE_LOWERCASE = _auth.password_require_lowercase
PASSWORD_REQUIRE_DIGIT = _auth.password_require_digit
PASSWORD_REQUIRE_SPECIAL = _auth.password_require_special
