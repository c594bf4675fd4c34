from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from gadamagado.logging import get_logger
from gadamagado.storage.errors import ConstraintViolation
from gadamagado.storage.models import (
    Principal,
    Role,
    SessionRecord,
    push_recently_viewed,
)


def _copy(user: Principal) -> Principal:
    return replace(
        user,
        favorites=list(user.favorites),
        recently_viewed=list(user.recently_viewed),
    )


class MemoryStore:
    """In-memory user directory keyed by id with a unique phone-number handle."""

    def __init__(self, *, password_hasher: Optional[PasswordHasher] = None) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, Principal] = {}
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()
        self._pwd_hasher = password_hasher or PasswordHasher(type=Type.ID)

    # directory lookups
    def find_by_id(self, user_id: str) -> Optional[Principal]:
        with self._data_lock:
            user = self.users.get(user_id)
            return _copy(user) if user else None

    def find_by_handle(self, phone_number: str) -> Optional[Principal]:
        with self._data_lock:
            user = next(
                (u for u in self.users.values() if u.phone_number == phone_number),
                None,
            )
            return _copy(user) if user else None

    def verify_secret(self, principal: Principal, plaintext: str) -> bool:
        try:
            return self._pwd_hasher.verify(principal.password_hash, plaintext)
        except (InvalidHash, VerifyMismatchError, VerificationError):
            self.logger.warning("password_verification_failed", user_id=principal.id)
            return False

    def hash_secret(self, plaintext: str) -> str:
        return self._pwd_hasher.hash(plaintext)

    # mutations
    def create_user(
        self,
        *,
        full_name: str,
        phone_number: str,
        password: str,
        email: Optional[str] = None,
        region: Optional[str] = None,
        district: Optional[str] = None,
        role: str = Role.USER.value,
        is_active: bool = True,
    ) -> Principal:
        with self._data_lock:
            if any(u.phone_number == phone_number for u in self.users.values()):
                raise ConstraintViolation(
                    "Phone number already registered", {"field": "phoneNumber"}
                )
            user = Principal(
                id=uuid.uuid4().hex,
                full_name=full_name,
                phone_number=phone_number,
                password_hash=self.hash_secret(password),
                email=email,
                region=region,
                district=district,
                role=Role(role).value,
                is_active=is_active,
            )
            self.users[user.id] = user
            return _copy(user)

    def list_users(self, limit: int = 100) -> List[Principal]:
        with self._data_lock:
            results = sorted(self.users.values(), key=lambda u: u.created_at, reverse=True)
            return [_copy(u) for u in results[:limit]]

    def update_profile(self, user_id: str, **fields: Optional[str]) -> Optional[Principal]:
        allowed = {"full_name", "email", "region", "district"}
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            for name, value in fields.items():
                if name not in allowed:
                    raise ConstraintViolation(
                        "field cannot be updated", {"field": name}
                    )
                if value is not None:
                    setattr(user, name, value)
            return _copy(user)

    def set_active(self, user_id: str, is_active: bool) -> Optional[Principal]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.is_active = is_active
            return _copy(user)

    def delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            return self.users.pop(user_id, None) is not None

    # bounded reference lists
    def add_favorite(self, user_id: str, ad_id: str) -> Optional[List[str]]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            if ad_id not in user.favorites:
                user.favorites.append(ad_id)
            return list(user.favorites)

    def remove_favorite(self, user_id: str, ad_id: str) -> Optional[List[str]]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.favorites = [fav for fav in user.favorites if fav != ad_id]
            return list(user.favorites)

    def push_recently_viewed(self, user_id: str, ad_id: str) -> Optional[List[str]]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.recently_viewed = push_recently_viewed(user.recently_viewed, ad_id)
            return list(user.recently_viewed)


class MemorySessionStore:
    """Process-local session store with TTL semantics.

    Used when Redis is unavailable under TEST_MODE or ALLOW_REDIS_FALLBACK_DEV.
    Expired records are dropped lazily on read.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self.sessions.get(session_id)
            if record is None:
                return None
            if record.is_expired(self._clock()):
                self.sessions.pop(session_id, None)
                return None
            return replace(record, data=dict(record.data))

    async def save_session(self, record: SessionRecord, ttl_seconds: int) -> None:
        stored = replace(
            record,
            data=dict(record.data),
            expires_at=self._clock() + timedelta(seconds=max(1, ttl_seconds)),
        )
        with self._lock:
            self.sessions[record.id] = stored

    async def destroy_session(self, session_id: str) -> None:
        with self._lock:
            self.sessions.pop(session_id, None)

    async def close(self) -> None:
        return None
