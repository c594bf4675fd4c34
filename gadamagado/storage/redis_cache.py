from __future__ import annotations

import json
from typing import Optional

import redis.asyncio as aioredis
from redis import Redis
from redis.exceptions import RedisError

from gadamagado.storage.errors import StoreUnavailable
from gadamagado.storage.models import SessionRecord

# Same key layout connect-redis uses so sessions stay shareable across servers
SESSION_KEY_PREFIX = "sess:"


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def _decode_record(session_id: str, raw: Optional[str]) -> Optional[SessionRecord]:
    if raw is None:
        return None
    try:
        return SessionRecord.from_dict(json.loads(raw))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise StoreUnavailable(
            f"malformed session record for {session_id}", backend="redis"
        ) from exc


def _encode_record(record: SessionRecord) -> str:
    return json.dumps(record.to_dict(), separators=(",", ":"))


class RedisSessionStore:
    """Thin Redis wrapper for session records with TTL expiry."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling dependent features."""
        # Use a short-lived synchronous client to avoid binding the async client to a
        # temporary event loop during startup checks.
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        try:
            raw = await self.client.get(_session_key(session_id))
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc
        return _decode_record(session_id, raw)

    async def save_session(self, record: SessionRecord, ttl_seconds: int) -> None:
        try:
            await self.client.set(
                _session_key(record.id), _encode_record(record), ex=max(1, ttl_seconds)
            )
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc

    async def destroy_session(self, session_id: str) -> None:
        try:
            await self.client.delete(_session_key(session_id))
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc

    async def close(self) -> None:
        """Close Redis connection pool. Call when shutting down or resetting runtime."""
        await self.client.aclose()
        await self.client.connection_pool.disconnect()


class SyncRedisSessionStore:
    """Synchronous Redis session store for use in tests.

    Uses a synchronous Redis client internally to avoid event loop binding
    issues in pytest, but exposes async methods so it can be awaited
    uniformly like RedisSessionStore.
    """

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        self.client.ping()

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        try:
            raw = self.client.get(_session_key(session_id))
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc
        return _decode_record(session_id, raw)

    async def save_session(self, record: SessionRecord, ttl_seconds: int) -> None:
        try:
            self.client.set(
                _session_key(record.id), _encode_record(record), ex=max(1, ttl_seconds)
            )
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc

    async def destroy_session(self, session_id: str) -> None:
        try:
            self.client.delete(_session_key(session_id))
        except RedisError as exc:
            raise StoreUnavailable(str(exc), backend="redis") from exc

    async def close(self) -> None:
        self.client.close()
