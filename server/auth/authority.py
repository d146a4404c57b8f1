"""
Token/session authority.

Issues short-lived access tokens plus opaque refresh tokens bound to
server-side sessions, and caps the number of live sessions per employee.

Usage:
    authority = SessionAuthority(directory, InMemorySessionStore(), TokenIssuer(secret))
    result = await authority.login("admin@garage.com", "Secret#123")
    principal = await authority.verify(result.access_token, result.session_id)
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from core.errors import AuthenticationError

from .config import MAX_SESSIONS_PER_USER, SESSION_TIMEOUT_SECONDS
from .sessions import SessionStore
from .tokens import TokenIssuer, generate_refresh_token, generate_session_id
from .types import Principal, Session, UserRecord

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int


class SessionAuthority:
    """Login, verification, refresh and logout over an injected session store."""

    def __init__(
        self,
        directory,
        store: SessionStore,
        token_issuer: TokenIssuer,
        max_sessions: int = MAX_SESSIONS_PER_USER,
        session_ttl: int = SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.store = store
        self.tokens = token_issuer
        self.max_sessions = max_sessions
        self.session_ttl = session_ttl
        self._clock = clock
        self._login_lock = asyncio.Lock()

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate an employee and open a session.

        Unknown email, inactive employee and wrong password all fail with the
        same message. When the employee already holds max_sessions live
        sessions, the oldest one is evicted.

        Raises:
            AuthenticationError: "Invalid credentials"
        """
        user = await self.directory.get_user_by_email(email)
        if user is None or not user.active:
            # Burn the same hashing time as a real check
            await self.directory.verify_password(password, _DUMMY_HASH)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not await self.directory.verify_password(password, user.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS)

        async with self._login_lock:
            existing = await self.store.list_for_user(user.employee_id)
            excess = len(existing) - self.max_sessions + 1
            for oldest in existing[:max(0, excess)]:
                await self.store.delete(oldest.session_id)
                logger.info(f"Evicted oldest session for employee {user.employee_id}")

            now = self._clock()
            session = Session(
                session_id=generate_session_id(),
                user_id=user.employee_id,
                refresh_token=generate_refresh_token(),
                created_at=now,
                expires_at=now + self.session_ttl,
                last_activity=now,
            )
            await self.store.save(session)

        return LoginResult(
            access_token=self.tokens.issue(user),
            refresh_token=session.refresh_token,
            session_id=session.session_id,
            expires_in=self.tokens.expires_in,
        )

    async def verify(self, access_token: str, session_id: Optional[str] = None) -> Principal:
        """
        Verify an access token and, if given, the session it rides on.

        An unknown session id is tolerated: the token alone authenticates.

        Raises:
            AuthenticationError: Invalid token, expired token, session
                mismatch or expired session
        """
        principal = self.tokens.principal(access_token, session_id)
        if not session_id:
            return principal

        session = await self.store.get(session_id)
        if session is None:
            return principal

        if session.user_id != principal.employee_id:
            raise AuthenticationError("Session mismatch")

        now = self._clock()
        if session.is_expired(now):
            await self.store.delete(session_id)
            raise AuthenticationError("Session expired")

        session.last_activity = now
        await self.store.save(session)
        return principal

    async def refresh(self, refresh_token: str, session_id: str) -> RefreshResult:
        """
        Issue a new access token and extend the session.

        Raises:
            AuthenticationError: Session not found, invalid refresh token,
                session expired or employee not found
        """
        session = await self.store.get(session_id) if session_id else None
        if session is None:
            raise AuthenticationError("Session not found")

        if await self.store.find_session_id(refresh_token) != session_id or session.refresh_token != refresh_token:
            raise AuthenticationError("Invalid refresh token")

        now = self._clock()
        if session.is_expired(now):
            await self.store.delete(session_id)
            raise AuthenticationError("Session expired")

        user: Optional[UserRecord] = await self.directory.get_user_by_id(session.user_id)
        if user is None:
            raise AuthenticationError("Employee not found")

        session.expires_at = now + self.session_ttl
        session.last_activity = now
        await self.store.save(session)
        return RefreshResult(access_token=self.tokens.issue(user), expires_in=self.tokens.expires_in)

    async def logout(self, session_id: Optional[str]) -> bool:
        """Delete a session. Idempotent; returns whether one was removed."""
        if not session_id:
            return False
        removed = await self.store.delete(session_id)
        if removed:
            logger.info("Session logged out")
        return removed

    async def sweep_expired(self) -> int:
        return await self.store.sweep(self._clock())

    async def active_session_count(self) -> int:
        return await self.store.count()


# Timing equaliser for unknown users; never matches any password
_DUMMY_HASH = (
    "scrypt:32768:8:1$0000000000000000$"
    "00000000000000000000000000000000000000000000000000000000000000000000000000000000"
    "000000000000000000000000000000000000000000000000"
)
