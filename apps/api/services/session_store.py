"""
Server-side session storage

Sessions are keyed by an opaque id carried in the session cookie and hold
``{user_id, user_role, user_name}``. Expiry is sliding: every authenticated
request calls ``touch`` and pushes ``expires_at`` forward by the TTL.

Redis is used when REDIS_URL is configured; otherwise sessions live in
process memory (development and single-instance deployments).
"""

import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Dict, Optional

import redis

from config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SessionData:
    user_id: int
    user_role: str
    user_name: str
    created_at: float = 0.0
    expires_at: float = 0.0


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(ABC):
    """Key-value store for login sessions"""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    def create(self, user_id: int, user_role: str, user_name: str, session_id: Optional[str] = None) -> str:
        """Store a new session and return its id"""
        sid = session_id or new_session_id()
        now = time.time()
        data = SessionData(
            user_id=user_id,
            user_role=user_role,
            user_name=user_name,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._save(sid, data)
        return sid

    @abstractmethod
    def _save(self, sid: str, data: SessionData) -> None:
        ...

    @abstractmethod
    def get(self, sid: str) -> Optional[SessionData]:
        """Return the live session for ``sid``, or None if absent or expired"""

    @abstractmethod
    def touch(self, sid: str) -> None:
        """Extend the session's lifetime by the TTL from now"""

    @abstractmethod
    def destroy(self, sid: str) -> None:
        """Remove the session; destroying an unknown session is a no-op"""


class InMemorySessionStore(SessionStore):

    def __init__(self, ttl_seconds: int, cleanup_interval: int = 300):
        super().__init__(ttl_seconds)
        self._sessions: Dict[str, SessionData] = {}
        self._lock = Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def _cleanup_expired(self) -> None:
        """Drop every expired session, at most once per cleanup interval; caller holds the lock"""
        now = time.time()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        expired = [sid for sid, data in self._sessions.items() if data.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug(f"Removed {len(expired)} expired sessions")

    def _save(self, sid: str, data: SessionData) -> None:
        with self._lock:
            self._cleanup_expired()
            self._sessions[sid] = data

    def get(self, sid: str) -> Optional[SessionData]:
        with self._lock:
            self._cleanup_expired()
            data = self._sessions.get(sid)
            if data is None:
                return None
            if data.expires_at <= time.time():
                del self._sessions[sid]
                return None
            return data

    def touch(self, sid: str) -> None:
        with self._lock:
            data = self._sessions.get(sid)
            if data is not None:
                data.expires_at = time.time() + self.ttl_seconds

    def destroy(self, sid: str) -> None:
        with self._lock:
            self._sessions.pop(sid, None)

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    KEY_PREFIX = "session:"

    def __init__(self, client: "redis.Redis", ttl_seconds: int):
        super().__init__(ttl_seconds)
        self._client = client

    def _key(self, sid: str) -> str:
        return f"{self.KEY_PREFIX}{sid}"

    def _save(self, sid: str, data: SessionData) -> None:
        self._client.setex(self._key(sid), self.ttl_seconds, json.dumps(asdict(data)))

    def get(self, sid: str) -> Optional[SessionData]:
        raw = self._client.get(self._key(sid))
        if raw is None:
            return None
        return SessionData(**json.loads(raw))

    def touch(self, sid: str) -> None:
        key = self._key(sid)
        raw = self._client.get(key)
        if raw is None:
            return
        data = SessionData(**json.loads(raw))
        data.expires_at = time.time() + self.ttl_seconds
        # xx: never recreate a session destroyed since the read above
        self._client.set(key, json.dumps(asdict(data)), ex=self.ttl_seconds, xx=True)

    def destroy(self, sid: str) -> None:
        self._client.delete(self._key(sid))


def build_session_store(settings: Settings) -> SessionStore:
    """Pick the session backend once at startup"""
    if settings.REDIS_URL:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Session store using Redis")
        return RedisSessionStore(client, settings.SESSION_TTL_SECONDS)

    logger.info("Session store using in-memory storage (development mode)")
    return InMemorySessionStore(settings.SESSION_TTL_SECONDS)
