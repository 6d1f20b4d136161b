"""
Server-side session management.

A session binds an opaque, server-generated id (sent to the browser in an
HTTP-only cookie) to a user id. Handlers never read ambient state: they ask
the ``SessionManager`` to resolve the cookie value for each request.

Two backends are available:
- ``InMemorySessionBackend``: a dict guarded by a lock (default)
- ``RedisSessionBackend``: session payloads stored as JSON with a TTL,
  plus a per-user index for logout-all

TTL strategy:
- "sliding": expiry is pushed back on activity, at most once per
  SESSION_SLIDING_REFRESH_INTERVAL, and never beyond SESSION_ABSOLUTE_MAX_TTL
- "absolute": the session expires SESSION_TTL after login no matter what
"""

import logging
import threading
import time
import uuid
from typing import Dict, Optional, Protocol, Set

from common.constants import (
    SESSION_ABSOLUTE_MAX_TTL,
    SESSION_KEY_PREFIX,
    SESSION_SLIDING_REFRESH_INTERVAL,
    SESSION_TTL,
    USER_SESSIONS_KEY_PREFIX,
)
from common.errors import SessionUnavailableError
from common.redis_client import RedisClient

logger = logging.getLogger(__name__)


class SessionBackend(Protocol):
    def save(self, sid: str, data: dict, ttl: int) -> bool: ...

    def load(self, sid: str) -> Optional[dict]: ...

    def remove(self, sid: str) -> Optional[dict]: ...

    def sessions_for_user(self, user_id: int) -> Set[str]: ...


class InMemorySessionBackend:
    """Process-local session table. Expired entries are dropped on read."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, dict] = {}
        self._expires_at: Dict[str, float] = {}

    def save(self, sid: str, data: dict, ttl: int) -> bool:
        now = time.time()
        with self._lock:
            self._sweep(now)
            self._sessions[sid] = dict(data)
            self._expires_at[sid] = now + ttl
        return True

    def _sweep(self, now: float) -> None:
        """Drop sessions that expired without being read again. Caller holds the lock."""
        for sid in [sid for sid, expires_at in self._expires_at.items() if now > expires_at]:
            self._expires_at.pop(sid, None)
            self._sessions.pop(sid, None)

    def load(self, sid: str) -> Optional[dict]:
        with self._lock:
            data = self._sessions.get(sid)
            if data is None:
                return None
            if time.time() > self._expires_at.get(sid, 0):
                self._sessions.pop(sid, None)
                self._expires_at.pop(sid, None)
                return None
            return dict(data)

    def remove(self, sid: str) -> Optional[dict]:
        with self._lock:
            self._expires_at.pop(sid, None)
            return self._sessions.pop(sid, None)

    def sessions_for_user(self, user_id: int) -> Set[str]:
        with self._lock:
            return {sid for sid, data in self._sessions.items() if data.get("user_id") == user_id}


class RedisSessionBackend:
    """
    Sessions in Redis.

    Keys:
    1. session:<sid> - session data (JSON, with TTL)
    2. user_sessions:<user_id> - Set of session ids for this user
    """

    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    def save(self, sid: str, data: dict, ttl: int) -> bool:
        # Fail closed: no session is handed out if Redis cannot store it
        if not self.redis.is_connected():
            raise SessionUnavailableError(
                "Redis is unavailable. Cannot store session."
            )
        if not self.redis.set_json(f"{SESSION_KEY_PREFIX}{sid}", data, ttl=ttl):
            raise SessionUnavailableError("Failed to store session in Redis")

        user_sessions_key = f"{USER_SESSIONS_KEY_PREFIX}{data['user_id']}"
        self.redis.sadd(user_sessions_key, sid)
        self.redis.expire(user_sessions_key, ttl)
        return True

    def load(self, sid: str) -> Optional[dict]:
        return self.redis.get_json(f"{SESSION_KEY_PREFIX}{sid}")

    def remove(self, sid: str) -> Optional[dict]:
        session_key = f"{SESSION_KEY_PREFIX}{sid}"
        data = self.redis.get_json(session_key)
        if data is None:
            return None
        self.redis.delete(session_key)
        if data.get("user_id") is not None:
            self.redis.srem(f"{USER_SESSIONS_KEY_PREFIX}{data['user_id']}", sid)
        return data

    def sessions_for_user(self, user_id: int) -> Set[str]:
        return self.redis.smembers(f"{USER_SESSIONS_KEY_PREFIX}{user_id}")


class SessionManager:
    """
    Creates, resolves and destroys sessions.

    ``now`` can be replaced with a fake clock in tests.
    """

    def __init__(
        self,
        backend: Optional[SessionBackend] = None,
        ttl: int = SESSION_TTL,
        strategy: str = "sliding",
        now=time.time,
    ):
        self.backend = backend or InMemorySessionBackend()
        self.ttl = ttl
        self.strategy = strategy
        self.now = now

    def create_session(self, user_id: int) -> str:
        """
        Create a new session bound to ``user_id``.

        Returns:
            Server-generated session id (sid)

        Raises:
            SessionUnavailableError: the backend cannot store sessions
        """
        sid = f"sess_{uuid.uuid4().hex}"
        now = self.now()
        data = {
            "user_id": user_id,
            "created_at": now,
            "last_seen_at": now,
            "max_expires_at": now + SESSION_ABSOLUTE_MAX_TTL,
        }
        self.backend.save(sid, data, self.ttl)
        logger.debug("Created session for user_id=%s", user_id)
        return sid

    def get_session(self, sid: Optional[str]) -> Optional[dict]:
        if not sid:
            return None
        data = self.backend.load(sid)
        if not data:
            return None

        now = self.now()
        if self.strategy == "absolute":
            expired = now > data["created_at"] + self.ttl
        else:
            expired = now > data.get("max_expires_at", now)
        if expired:
            self.delete_session(sid)
            return None
        return data

    def get_user_id(self, sid: Optional[str]) -> Optional[int]:
        """Resolve a cookie value to a user id, refreshing sliding sessions."""
        data = self.get_session(sid)
        if data is None:
            return None
        self._touch(sid, data)
        return data["user_id"]

    def _touch(self, sid: str, data: dict) -> None:
        if self.strategy != "sliding":
            return
        now = self.now()
        if now - data.get("last_seen_at", 0) < SESSION_SLIDING_REFRESH_INTERVAL:
            return
        data["last_seen_at"] = now
        remaining = int(data["max_expires_at"] - now)
        if remaining <= 0:
            return
        try:
            self.backend.save(sid, data, min(self.ttl, remaining))
        except SessionUnavailableError as e:
            # the existing session stays valid until its current TTL runs out
            logger.warning("Could not refresh session: %s", e)

    def delete_session(self, sid: Optional[str]) -> bool:
        """Destroy a session. Unknown or empty ids are a no-op."""
        if not sid:
            return False
        return self.backend.remove(sid) is not None

    def delete_user_sessions(self, user_id: int) -> int:
        """Destroy every session of a user (logout everywhere)."""
        deleted = 0
        for sid in self.backend.sessions_for_user(user_id):
            if self.delete_session(sid):
                deleted += 1
        return deleted


def build_session_manager(config) -> SessionManager:
    """Pick the backend named by ``config.SESSION_BACKEND``."""
    if config.uses_redis_sessions():
        backend = RedisSessionBackend(RedisClient())
    else:
        backend = InMemorySessionBackend()
    return SessionManager(backend=backend, strategy=config.SESSION_TTL_STRATEGY)
