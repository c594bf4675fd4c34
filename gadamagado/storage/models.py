from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Wire key express-style session payloads use for the bound principal
SESSION_USER_KEY = "userId"

RECENTLY_VIEWED_LIMIT = 20


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Principal:
    id: str
    full_name: str
    phone_number: str
    password_hash: str
    email: Optional[str] = None
    role: str = Role.USER.value
    is_active: bool = True
    region: Optional[str] = None
    district: Optional[str] = None
    favorites: List[str] = field(default_factory=list)
    recently_viewed: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)

    def public_view(self) -> Dict[str, Any]:
        """Outward representation; the secret hash never leaves the directory."""

        return {
            "id": self.id,
            "fullName": self.full_name,
            "phoneNumber": self.phone_number,
            "email": self.email,
            "region": self.region,
            "district": self.district,
            "role": self.role,
            "isActive": self.is_active,
        }


def push_recently_viewed(
    items: List[str], ad_id: str, limit: int = RECENTLY_VIEWED_LIMIT
) -> List[str]:
    """Most-recent-first, de-duplicated, capacity-bounded queue update."""

    updated = [ad_id] + [item for item in items if item != ad_id]
    return updated[:limit]


@dataclass
class SessionRecord:
    id: str
    data: Dict[str, Any]
    created_at: datetime
    expires_at: datetime

    @property
    def user_id(self) -> Optional[str]:
        raw = self.data.get(SESSION_USER_KEY)
        return str(raw) if raw else None

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    @classmethod
    def new(
        cls,
        user_id: str,
        ttl: timedelta,
        *,
        now: Optional[datetime] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "SessionRecord":
        created = now or _utcnow()
        data = dict(payload or {})
        data[SESSION_USER_KEY] = user_id
        return cls(
            id=secrets.token_urlsafe(32),
            data=data,
            created_at=created,
            expires_at=created + ttl,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SessionRecord":
        return cls(
            id=raw["id"],
            data=dict(raw.get("data") or {}),
            created_at=datetime.fromisoformat(raw["created_at"]),
            expires_at=datetime.fromisoformat(raw["expires_at"]),
        )
