"""
Session storage backends.

A session maps an opaque session id to its owner, its refresh token and
its expiry. Every store also indexes refresh token -> session id.

- InMemorySessionStore: per-process dicts. No method awaits, so each call
  runs atomically on the event loop. Sessions are lost on restart and are
  not shared between workers.
- RedisSessionStore: shared store on redis.asyncio. Keys expire with the
  session; a per-user sorted set (score = created_at) orders sessions.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

from .types import Session

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Async session storage interface."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Insert or replace a session and its refresh token mapping."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session and its refresh mapping. Returns whether it existed."""

    @abstractmethod
    async def find_session_id(self, refresh_token: str) -> Optional[str]:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: int) -> list[Session]:
        """Sessions owned by user_id, oldest first."""

    @abstractmethod
    async def sweep(self, now: float) -> int:
        """Delete every session expired at `now`. Returns the number removed."""

    async def count(self) -> int:
        return 0

    async def close(self) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._refresh_index: dict[str, str] = {}

    async def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def save(self, session: Session) -> None:
        previous = self._sessions.get(session.session_id)
        if previous is not None and previous.refresh_token != session.refresh_token:
            self._refresh_index.pop(previous.refresh_token, None)
        self._sessions[session.session_id] = session
        self._refresh_index[session.refresh_token] = session.session_id

    async def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._refresh_index.pop(session.refresh_token, None)
        return True

    async def find_session_id(self, refresh_token: str) -> Optional[str]:
        return self._refresh_index.get(refresh_token)

    async def list_for_user(self, user_id: int) -> list[Session]:
        owned = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted(owned, key=lambda s: s.created_at)

    async def sweep(self, now: float) -> int:
        expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in expired:
            session = self._sessions.pop(sid)
            self._refresh_index.pop(session.refresh_token, None)
        return len(expired)

    async def count(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Shared session store on Redis.

    Keys:
        {prefix}session:{session_id}  -> session JSON, expires at expires_at
        {prefix}refresh:{token}       -> session_id, same expiry
        {prefix}user:{user_id}        -> sorted set of session ids by created_at
    """

    def __init__(self, client, prefix: str = "garage:"):
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "garage:") -> "RedisSessionStore":
        import redis.asyncio as redis_async
        return cls(redis_async.from_url(url, decode_responses=True), prefix=prefix)

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}session:{session_id}"

    def _refresh_key(self, refresh_token: str) -> str:
        return f"{self._prefix}refresh:{refresh_token}"

    def _user_key(self, user_id: int) -> str:
        return f"{self._prefix}user:{user_id}"

    async def get(self, session_id: str) -> Optional[Session]:
        raw = await self._redis.get(self._session_key(session_id))
        if raw is None:
            return None
        return Session.from_dict(json.loads(raw))

    async def save(self, session: Session) -> None:
        previous = await self.get(session.session_id)
        expire_at = max(1, math.ceil(session.expires_at))
        async with self._redis.pipeline(transaction=True) as pipe:
            if previous is not None and previous.refresh_token != session.refresh_token:
                pipe.delete(self._refresh_key(previous.refresh_token))
            pipe.set(self._session_key(session.session_id), json.dumps(session.to_dict()), exat=expire_at)
            pipe.set(self._refresh_key(session.refresh_token), session.session_id, exat=expire_at)
            pipe.zadd(self._user_key(session.user_id), {session.session_id: session.created_at})
            await pipe.execute()

    async def delete(self, session_id: str) -> bool:
        session = await self.get(session_id)
        if session is None:
            return False
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._session_key(session_id))
            pipe.delete(self._refresh_key(session.refresh_token))
            pipe.zrem(self._user_key(session.user_id), session_id)
            await pipe.execute()
        return True

    async def find_session_id(self, refresh_token: str) -> Optional[str]:
        return await self._redis.get(self._refresh_key(refresh_token))

    async def list_for_user(self, user_id: int) -> list[Session]:
        user_key = self._user_key(user_id)
        sessions = []
        for session_id in await self._redis.zrange(user_key, 0, -1):
            session = await self.get(session_id)
            if session is None:
                # Key expired on its own; drop the stale index entry
                await self._redis.zrem(user_key, session_id)
                continue
            sessions.append(session)
        return sessions

    async def sweep(self, now: float) -> int:
        removed = 0
        async for key in self._redis.scan_iter(match=f"{self._prefix}session:*"):
            raw = await self._redis.get(key)
            if raw is None:
                continue
            session = Session.from_dict(json.loads(raw))
            if session.is_expired(now) and await self.delete(session.session_id):
                removed += 1
        return removed

    async def count(self) -> int:
        total = 0
        async for _ in self._redis.scan_iter(match=f"{self._prefix}session:*"):
            total += 1
        return total

    async def close(self) -> None:
        await self._redis.aclose()


def create_session_store(settings) -> SessionStore:
    """Build the store named by settings.sessions.store ("memory" or "redis")."""
    kind = settings.sessions.store.lower()
    if kind == "memory":
        return InMemorySessionStore()
    if kind == "redis":
        logger.info(f"Using Redis session store ({settings.redis.redis_url})")
        return RedisSessionStore.from_url(settings.redis.redis_url, prefix=settings.sessions.redis_prefix)
    raise ValueError(f"Unknown session store: {settings.sessions.store!r} (expected memory or redis)")
