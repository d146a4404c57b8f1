"""
Access token signing/verification and opaque token generation.

Handles:
- Access token creation and decoding (PyJWT, issuer + audience checked)
- Refresh token and session id generation
- Reading tokens from request headers
"""
import logging
import secrets
import time
from typing import Callable, Optional

import jwt
from flask import request

from core.errors import AuthenticationError

from .config import (
    ACCESS_TOKEN_EXPIRY_SECONDS,
    ACCESS_TOKEN_HEADER,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    REFRESH_TOKEN_BYTES,
    SESSION_ID_BYTES,
    SESSION_ID_HEADER,
)
from .types import Principal, UserRecord

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Signs and verifies access tokens with a shared secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = JWT_ALGORITHM,
        issuer: str = JWT_ISSUER,
        audience: str = JWT_AUDIENCE,
        expires_in: int = ACCESS_TOKEN_EXPIRY_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty secret")
        self._secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.expires_in = expires_in
        self._clock = clock

    def issue(self, user: UserRecord) -> str:
        """Create a signed access token for an employee.

        Args:
            user: Authenticated employee

        Returns:
            Encoded JWT access token
        """
        now = int(self._clock())
        payload = {
            "sub": str(user.employee_id),
            "employee_id": user.employee_id,
            "employee_email": user.email,
            "employee_role": user.role,
            "employee_first_name": user.first_name,
            "iat": now,
            "exp": now + self.expires_in,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        """Verify signature, expiry, issuer and audience.

        ``exp`` and ``iat`` are checked against the issuer's own clock, the
        same one ``issue`` stamps them with.

        Raises:
            AuthenticationError: "Token has expired" or "Invalid token"
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": ["exp", "iat", "sub"], "verify_exp": False, "verify_iat": False},
            )
            exp = int(claims["exp"])
            iat = int(claims["iat"])
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise AuthenticationError("Invalid token")
        except (TypeError, ValueError):
            logger.debug("Token rejected: non-integer exp or iat")
            raise AuthenticationError("Invalid token")

        now = self._clock()
        if exp <= now:
            raise AuthenticationError("Token has expired")
        if iat > now:
            logger.debug("Token rejected: issued in the future")
            raise AuthenticationError("Invalid token")
        return claims

    def principal(self, token: str, session_id: Optional[str] = None) -> Principal:
        claims = self.decode(token)
        return Principal(
            employee_id=int(claims["employee_id"]),
            email=claims.get("employee_email", ""),
            role=int(claims["employee_role"]),
            first_name=claims.get("employee_first_name", ""),
            session_id=session_id,
        )


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def generate_session_id() -> str:
    return secrets.token_hex(SESSION_ID_BYTES)


# =============================================================================
# Request helpers
# =============================================================================

def get_token_from_request() -> Optional[str]:
    """Access token from the x-access-token header."""
    return request.headers.get(ACCESS_TOKEN_HEADER) or None


def get_session_id_from_request() -> Optional[str]:
    return request.headers.get(SESSION_ID_HEADER) or None
