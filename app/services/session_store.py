"""Session store adapters.

Key layout (prefix defaults to ``evento:``):
  {prefix}user_data:{sender_id}   -> Session JSON        TTL session_ttl_seconds
  {prefix}inbound:{message_id}    -> "1"                 TTL inbound_dedup_ttl_seconds

Reads and writes are plain GET/SET; serialising turns per sender is the
caller's job (see app.services.locks).
"""

import heapq
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from app.logging_config import get_logger
from app.models.session import Session
from app.services.result import Result

logger = get_logger("session_store")

DEFAULT_SESSION_TTL_SECONDS = 7200
USER_DATA_PREFIX = "user_data:"
INBOUND_PREFIX = "inbound:"


class SessionStoreError(Exception):
    """The store could not be reached; the caller must not assume the session is absent."""


class CorruptedSessionError(Exception):
    """A stored record exists but cannot be read as a Session."""

    def __init__(self, session_id: str, raw: Any, reason: str):
        self.session_id = session_id
        self.raw = raw
        self.reason = reason
        super().__init__(f"Corrupted session {session_id}: {reason}")


def decode_session(session_id: str, payload: str) -> Session:
    try:
        raw = json.loads(payload)
    except ValueError as exc:
        raise CorruptedSessionError(session_id, payload, f"invalid json: {exc}") from exc
    if isinstance(raw, dict):
        raw.setdefault("id", session_id)
    try:
        return Session.model_validate(raw)
    except ValidationError as exc:
        raise CorruptedSessionError(session_id, raw, str(exc)) from exc


class SessionStore(ABC):
    """Contract consumed by the conversation service."""

    ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the session, None when absent. Raises SessionStoreError / CorruptedSessionError."""

    @abstractmethod
    async def put(self, session: Session, ttl_seconds: Optional[int] = None) -> Result[None]:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> Result[None]:
        pass

    @abstractmethod
    async def claim_message(self, message_id: str, ttl_seconds: int) -> bool:
        """Mark an inbound message id as seen. False when it was already claimed."""

    @abstractmethod
    async def ping(self) -> bool:
        pass


class RedisSessionStore(SessionStore):
    def __init__(self, redis_client, key_prefix: str = "evento:", ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS):
        self._redis = redis_client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def _session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}{USER_DATA_PREFIX}{session_id}"

    def _inbound_key(self, message_id: str) -> str:
        return f"{self.key_prefix}{INBOUND_PREFIX}{message_id}"

    async def get(self, session_id: str) -> Optional[Session]:
        try:
            payload = await self._redis.get(self._session_key(session_id))
        except RedisError as exc:
            logger.error(
                "Session read failed",
                extra={"context": {"session_id": session_id, "error": str(exc)}},
            )
            raise SessionStoreError(str(exc)) from exc

        if payload is None:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return decode_session(session_id, payload)

    async def put(self, session: Session, ttl_seconds: Optional[int] = None) -> Result[None]:
        ttl = ttl_seconds or self.ttl_seconds
        try:
            await self._redis.set(self._session_key(session.id), session.model_dump_json(), ex=ttl)
        except RedisError as exc:
            logger.error(
                "Session write failed",
                extra={"context": {"session_id": session.id, "state": session.state.value, "error": str(exc)}},
            )
            return Result.failure(str(exc), "store_error")
        logger.debug(f"Session saved: {session.id}, state={session.state.value}, ttl={ttl}")
        return Result.success()

    async def delete(self, session_id: str) -> Result[None]:
        try:
            await self._redis.delete(self._session_key(session_id))
        except RedisError as exc:
            logger.error(
                "Session delete failed",
                extra={"context": {"session_id": session_id, "error": str(exc)}},
            )
            return Result.failure(str(exc), "store_error")
        return Result.success()

    async def claim_message(self, message_id: str, ttl_seconds: int) -> bool:
        try:
            was_set = await self._redis.set(self._inbound_key(message_id), "1", ex=ttl_seconds, nx=True)
        except RedisError as exc:
            logger.warning(f"Inbound dedup unavailable, proceeding without it: {exc}")
            return True
        return bool(was_set)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.warning(f"Redis ping failed: {exc}")
            return False


class InMemorySessionStore(SessionStore):
    """Process-local store with the same semantics, used without REDIS_URL and in tests.

    Every write pushes (expires_at, kind, key) onto a heap; writes pop the
    expired head of the heap, so entries nobody reads again are still freed.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, tuple[float, str]] = {}
        self._inbound: dict[str, float] = {}
        self._expiry: list[tuple[float, str, str]] = []

    def _expired(self, expires_at: float) -> bool:
        return expires_at <= self._clock()

    def _track(self, expires_at: float, kind: str, key: str) -> None:
        heapq.heappush(self._expiry, (expires_at, kind, key))

    def _purge_expired(self) -> None:
        now = self._clock()
        while self._expiry and self._expiry[0][0] <= now:
            expires_at, kind, key = heapq.heappop(self._expiry)
            # A later write for the same key leaves an outdated heap entry behind.
            if kind == "session":
                entry = self._sessions.get(key)
                if entry is not None and entry[0] == expires_at:
                    del self._sessions[key]
            elif self._inbound.get(key) == expires_at:
                del self._inbound[key]

    def _store(self, session_id: str, payload: str, ttl: int) -> None:
        self._purge_expired()
        expires_at = self._clock() + ttl
        self._sessions[session_id] = (expires_at, payload)
        self._track(expires_at, "session", session_id)

    async def get(self, session_id: str) -> Optional[Session]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._expired(expires_at):
            del self._sessions[session_id]
            return None
        return decode_session(session_id, payload)

    async def put(self, session: Session, ttl_seconds: Optional[int] = None) -> Result[None]:
        self._store(session.id, session.model_dump_json(), ttl_seconds or self.ttl_seconds)
        return Result.success()

    async def delete(self, session_id: str) -> Result[None]:
        self._sessions.pop(session_id, None)
        return Result.success()

    async def claim_message(self, message_id: str, ttl_seconds: int) -> bool:
        self._purge_expired()
        expires_at = self._inbound.get(message_id)
        if expires_at is not None and not self._expired(expires_at):
            return False
        expires_at = self._clock() + ttl_seconds
        self._inbound[message_id] = expires_at
        self._track(expires_at, "inbound", message_id)
        return True

    async def ping(self) -> bool:
        return True

    def put_raw(self, session_id: str, payload: str, ttl_seconds: Optional[int] = None) -> None:
        """Store an arbitrary payload under a session id (used to simulate legacy records)."""
        self._store(session_id, payload, ttl_seconds or self.ttl_seconds)
