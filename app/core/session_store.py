import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from app.core.exceptions import MalformedSession, StorageUnavailable
from app.models.message import HistoryEntry
from app.models.session import UserSession, dump_session, load_session

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=24)
HISTORY_LIMIT = 50

BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

class SessionStore(ABC):
    """Per-user conversation state plus a bounded, newest-first message log.

    Each user has two records: the session blob (state and context written
    together) and the history list. Both share one inactivity TTL that is
    re-armed on every write. Writes are full overwrites, so two concurrent
    dispatches for the same user resolve as last writer wins.
    """

    def __init__(self, session_ttl: timedelta = SESSION_TTL, history_limit: int = HISTORY_LIMIT):
        self.session_ttl = session_ttl
        self.history_limit = history_limit

    @property
    def ttl_seconds(self) -> int:
        return int(self.session_ttl.total_seconds())

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserSession]:
        """Returns None for an unknown or expired user, raises MalformedSession on a bad blob"""

    @abstractmethod
    async def put(self, user_id: str, session: UserSession) -> None:
        pass

    @abstractmethod
    async def append_history(self, user_id: str, entry: HistoryEntry) -> None:
        pass

    @abstractmethod
    async def get_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[HistoryEntry]:
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def count_active_sessions(self) -> int:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    async def close(self):
        pass

    def _decode(self, user_id: str, raw) -> UserSession:
        try:
            return load_session(raw)
        except ValidationError as e:
            raise MalformedSession(user_id, f"{e.error_count()} validation error(s)") from e


class RedisSessionStore(SessionStore):
    SESSION_PREFIX = "session:"
    HISTORY_PREFIX = "history:"

    def __init__(self, redis_client: redis.Redis, **kwargs):
        super().__init__(**kwargs)
        self.redis = redis_client

    @classmethod
    def from_url(cls, url: str, timeout: float = 5.0, **kwargs) -> "RedisSessionStore":
        client = redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
        return cls(client, **kwargs)

    def _session_key(self, user_id: str) -> str:
        return f"{self.SESSION_PREFIX}{user_id}"

    def _history_key(self, user_id: str) -> str:
        return f"{self.HISTORY_PREFIX}{user_id}"

    async def get(self, user_id: str) -> Optional[UserSession]:
        try:
            raw = await self.redis.get(self._session_key(user_id))
        except BACKEND_ERRORS as e:
            logger.error(f"Error retrieving session for {user_id}: {e}")
            raise StorageUnavailable(f"session read failed for {user_id}") from e

        if raw is None:
            return None
        return self._decode(user_id, raw)

    async def put(self, user_id: str, session: UserSession):
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.setex(self._session_key(user_id), self.ttl_seconds, dump_session(session))
            # History has no clock of its own
            pipe.expire(self._history_key(user_id), self.ttl_seconds)
            await pipe.execute()
        except BACKEND_ERRORS as e:
            logger.error(f"Error saving session for {user_id}: {e}")
            raise StorageUnavailable(f"session write failed for {user_id}") from e

    async def append_history(self, user_id: str, entry: HistoryEntry):
        key = self._history_key(user_id)
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.lpush(key, entry.model_dump_json())
            pipe.ltrim(key, 0, self.history_limit - 1)
            pipe.expire(key, self.ttl_seconds)
            # One clock for both keys; a no-op when the session is gone
            pipe.expire(self._session_key(user_id), self.ttl_seconds)
            await pipe.execute()
        except BACKEND_ERRORS as e:
            logger.error(f"Error adding to history for {user_id}: {e}")
            raise StorageUnavailable(f"history append failed for {user_id}") from e

    async def get_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[HistoryEntry]:
        if limit <= 0:
            return []
        try:
            items = await self.redis.lrange(self._history_key(user_id), 0, limit - 1)
        except BACKEND_ERRORS as e:
            logger.error(f"Error getting history for {user_id}: {e}")
            raise StorageUnavailable(f"history read failed for {user_id}") from e

        history = []
        for item in items:
            try:
                history.append(HistoryEntry.model_validate_json(item))
            except ValidationError:
                logger.warning(f"Skipping unreadable history entry for {user_id}")
        return history

    async def clear(self, user_id: str):
        try:
            await self.redis.delete(self._session_key(user_id), self._history_key(user_id))
            logger.info(f"Session cleared for {user_id}")
        except BACKEND_ERRORS as e:
            logger.error(f"Error clearing session for {user_id}: {e}")
            raise StorageUnavailable(f"session clear failed for {user_id}") from e

    async def count_active_sessions(self) -> int:
        try:
            count = 0
            async for _ in self.redis.scan_iter(match=f"{self.SESSION_PREFIX}*"):
                count += 1
            return count
        except BACKEND_ERRORS as e:
            logger.error(f"Error counting sessions: {e}")
            raise StorageUnavailable("session count failed") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except BACKEND_ERRORS as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        await self.redis.aclose()


class InMemorySessionStore(SessionStore):
    """Process-local backend for tests and single-process local runs."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._sessions: Dict[str, Tuple[str, float]] = {}
        self._history: Dict[str, Tuple[List[str], float]] = {}

    def _deadline(self) -> float:
        return time.monotonic() + self.ttl_seconds

    def _expire(self, user_id: str):
        now = time.monotonic()
        session = self._sessions.get(user_id)
        if session and session[1] <= now:
            del self._sessions[user_id]
        history = self._history.get(user_id)
        if history and history[1] <= now:
            del self._history[user_id]

    async def get(self, user_id: str) -> Optional[UserSession]:
        self._expire(user_id)
        stored = self._sessions.get(user_id)
        if stored is None:
            return None
        return self._decode(user_id, stored[0])

    def cleanup_expired_sessions(self) -> int:
        """Drops every expired session and history record, returns the number of users purged"""
        now = time.monotonic()
        expired = {user_id for user_id, (_, deadline) in self._sessions.items() if deadline <= now}
        expired.update(user_id for user_id, (_, deadline) in self._history.items() if deadline <= now)
        for user_id in expired:
            self._expire(user_id)

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    async def put(self, user_id: str, session: UserSession):
        self.cleanup_expired_sessions()
        deadline = self._deadline()
        self._sessions[user_id] = (dump_session(session), deadline)
        if user_id in self._history:
            self._history[user_id] = (self._history[user_id][0], deadline)

    async def append_history(self, user_id: str, entry: HistoryEntry):
        self._expire(user_id)
        deadline = self._deadline()
        entries = self._history.get(user_id, ([], 0.0))[0]
        entries = [entry.model_dump_json()] + entries[:self.history_limit - 1]
        self._history[user_id] = (entries, deadline)
        if user_id in self._sessions:
            self._sessions[user_id] = (self._sessions[user_id][0], deadline)

    async def get_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[HistoryEntry]:
        self._expire(user_id)
        if limit <= 0:
            return []
        entries = self._history.get(user_id, ([], 0.0))[0]
        return [HistoryEntry.model_validate_json(item) for item in entries[:limit]]

    async def clear(self, user_id: str):
        self._sessions.pop(user_id, None)
        self._history.pop(user_id, None)
        logger.info(f"Session cleared for {user_id}")

    async def count_active_sessions(self) -> int:
        self.cleanup_expired_sessions()
        return len(self._sessions)

    async def ping(self) -> bool:
        return True


def create_session_store(settings) -> SessionStore:
    ttl = timedelta(hours=settings.session_ttl_hours)
    if settings.session_backend == "memory":
        logger.warning("Using in-memory session store; sessions are not shared between processes")
        return InMemorySessionStore(session_ttl=ttl, history_limit=settings.history_limit)
    return RedisSessionStore.from_url(
        settings.redis_url,
        timeout=settings.redis_timeout,
        session_ttl=ttl,
        history_limit=settings.history_limit,
    )
