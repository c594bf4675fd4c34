from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from gadamagado.logging import get_logger
from gadamagado.service.errors import AuthenticationError, NotFoundError, ValidationError
from gadamagado.service.sessions import SessionManager
from gadamagado.service.tokens import TokenService
from gadamagado.storage.memory import MemoryStore
from gadamagado.storage.models import Principal, SessionRecord

logger = get_logger(__name__)

_INVALID_CREDENTIALS = "Invalid credentials"


@dataclass
class LoginResult:
    principal: Principal
    token: str
    session: SessionRecord


class AccountService:
    """Registration, login and the per-principal profile lists.

    Every successful register or login binds both channels: a fresh session
    for cookie clients and a bearer token for clients that cannot hold one.

    Ad ids in favorites and recently viewed are opaque references; they are
    not checked against any listing store.
    """

    def __init__(
        self,
        directory: MemoryStore,
        tokens: TokenService,
        sessions: SessionManager,
    ) -> None:
        self.directory = directory
        self.tokens = tokens
        self.sessions = sessions

    async def _bind(self, principal: Principal) -> LoginResult:
        session = await self.sessions.create(principal.id)
        return LoginResult(principal, self.tokens.issue(principal.id), session)

    async def register(
        self,
        *,
        full_name: str,
        phone_number: str,
        password: str,
        region: str,
        district: str,
        email: Optional[str] = None,
    ) -> LoginResult:
        if not all((full_name, phone_number, password, region, district)):
            raise ValidationError("Please provide all required fields")
        principal = self.directory.create_user(
            full_name=full_name,
            phone_number=phone_number,
            password=password,
            email=email or None,
            region=region,
            district=district,
        )
        logger.info("user_registered", user_id=principal.id)
        return await self._bind(principal)

    async def login(self, phone_number: str, password: str) -> LoginResult:
        if not phone_number or not password:
            raise ValidationError("Please provide phone number and password")
        principal = self.directory.find_by_handle(phone_number)
        if principal is None or not self.directory.verify_secret(principal, password):
            logger.info("login_rejected", reason="bad_credentials")
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not principal.is_active:
            logger.info("login_rejected", reason="inactive", user_id=principal.id)
            raise AuthenticationError(_INVALID_CREDENTIALS)
        logger.info("user_logged_in", user_id=principal.id)
        return await self._bind(principal)

    async def logout(self, session_id: Optional[str]) -> None:
        await self.sessions.destroy(session_id)

    def get_profile(self, user_id: str) -> Principal:
        principal = self.directory.find_by_id(user_id)
        if principal is None:
            raise NotFoundError("User not found")
        return principal

    def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        region: Optional[str] = None,
        district: Optional[str] = None,
    ) -> Principal:
        updated = self.directory.update_profile(
            user_id, full_name=full_name, email=email, region=region, district=district
        )
        if updated is None:
            raise NotFoundError("User not found")
        return updated

    def list_users(self, limit: int = 100) -> List[Principal]:
        return self.directory.list_users(limit=limit)

    def favorites(self, user_id: str) -> List[str]:
        return list(self.get_profile(user_id).favorites)

    def add_favorite(self, user_id: str, ad_id: str) -> List[str]:
        return self._require_list(self.directory.add_favorite(user_id, _require_ad(ad_id)))

    def remove_favorite(self, user_id: str, ad_id: str) -> List[str]:
        return self._require_list(self.directory.remove_favorite(user_id, ad_id))

    def recently_viewed(self, user_id: str) -> List[str]:
        return list(self.get_profile(user_id).recently_viewed)

    def push_recently_viewed(self, user_id: str, ad_id: str) -> List[str]:
        return self._require_list(
            self.directory.push_recently_viewed(user_id, _require_ad(ad_id))
        )

    @staticmethod
    def _require_list(items: Optional[List[str]]) -> List[str]:
        if items is None:
            raise NotFoundError("User not found")
        return items


def _require_ad(ad_id: Optional[str]) -> str:
    ad_id = (ad_id or "").strip()
    if not ad_id:
        raise ValidationError("Please provide an ad id")
    return ad_id
