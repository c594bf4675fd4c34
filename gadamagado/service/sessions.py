from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from gadamagado.logging import get_logger
from gadamagado.storage.models import SessionRecord

logger = get_logger(__name__)


class SessionStore(Protocol):
    async def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    async def save_session(self, record: SessionRecord, ttl_seconds: int) -> None: ...

    async def destroy_session(self, session_id: str) -> None: ...

    async def close(self) -> None: ...


class SessionManager:
    """Creates, resolves and destroys server-side sessions.

    Expiry is reset on every save. With ``rolling`` enabled a successful
    resolve also counts as a save, giving a sliding window.
    """

    def __init__(
        self,
        store: SessionStore,
        ttl: timedelta,
        *,
        rolling: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.rolling = rolling
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self._clock()

    async def create(
        self, principal_id: str, payload: Optional[Dict[str, Any]] = None
    ) -> SessionRecord:
        record = SessionRecord.new(principal_id, self.ttl, now=self._now(), payload=payload)
        await self.store.save_session(record, int(self.ttl.total_seconds()))
        logger.info("session_created", session_id=record.id, user_id=principal_id)
        return record

    async def save(self, record: SessionRecord) -> SessionRecord:
        refreshed = replace(record, expires_at=self._now() + self.ttl)
        await self.store.save_session(refreshed, int(self.ttl.total_seconds()))
        return refreshed

    async def load(self, session_id: Optional[str]) -> Optional[SessionRecord]:
        if not session_id:
            return None
        record = await self.store.get_session(session_id)
        if record is None or record.is_expired(self._now()):
            return None
        return record

    async def resolve(self, session_id: Optional[str]) -> Optional[str]:
        """Principal id bound to the session, or None if unknown, expired or unbound.

        Store faults propagate so the caller can tell them apart from absence.
        """
        record = await self.load(session_id)
        if record is None or not record.user_id:
            return None
        if self.rolling:
            await self.save(record)
        return record.user_id

    async def destroy(self, session_id: Optional[str]) -> None:
        """Idempotent; store errors are logged and never reach the caller."""
        if not session_id:
            return
        try:
            await self.store.destroy_session(session_id)
        except Exception as exc:
            logger.warning(
                "session_destroy_failed",
                session_id=session_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return
        logger.info("session_destroyed", session_id=session_id)
