from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional, Protocol, Sequence, Union

from gadamagado.logging import get_logger
from gadamagado.service.sessions import SessionManager
from gadamagado.service.tokens import TokenService, extract_bearer
from gadamagado.storage.models import Principal

logger = get_logger(__name__)


class UserDirectory(Protocol):
    """Principal lookups. ``find_by_id`` may be sync or a coroutine."""

    def find_by_id(
        self, user_id: str
    ) -> Union[Optional[Principal], Awaitable[Optional[Principal]]]: ...

    def find_by_handle(self, phone_number: str) -> Optional[Principal]: ...

    def verify_secret(self, principal: Principal, plaintext: str) -> bool: ...


async def _find_principal(
    directory: UserDirectory, principal_id: str
) -> Optional[Principal]:
    principal = directory.find_by_id(principal_id)
    if inspect.isawaitable(principal):
        principal = await principal
    return principal


class Outcome(str, Enum):
    RESOLVED = "resolved"
    NOT_APPLICABLE = "not_applicable"
    INVALID = "invalid"
    FAULT = "fault"


@dataclass(frozen=True)
class ChannelResult:
    """What one credential channel concluded about a request."""

    channel: str
    outcome: Outcome
    principal: Optional[Principal] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def resolved(cls, channel: str, principal: Principal) -> "ChannelResult":
        return cls(channel, Outcome.RESOLVED, principal=principal)

    @classmethod
    def not_applicable(cls, channel: str) -> "ChannelResult":
        return cls(channel, Outcome.NOT_APPLICABLE)

    @classmethod
    def invalid(cls, channel: str, reason: str) -> "ChannelResult":
        return cls(channel, Outcome.INVALID, reason=reason)

    @classmethod
    def fault(cls, channel: str, error: BaseException) -> "ChannelResult":
        return cls(channel, Outcome.FAULT, reason=type(error).__name__, error=error)


@dataclass(frozen=True)
class Credentials:
    """Raw credential carriers pulled off a request."""

    authorization: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def bearer_token(self) -> Optional[str]:
        return extract_bearer(self.authorization)


class AuthStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"
    UNAUTHENTICATED = "unauthenticated"
    INTERNAL_ERROR = "internal_error"


@dataclass
class AuthResult:
    status: AuthStatus
    principal: Optional[Principal] = None
    channel: Optional[str] = None
    trace: List[ChannelResult] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED

    @property
    def fault(self) -> Optional[ChannelResult]:
        return next((r for r in self.trace if r.outcome == Outcome.FAULT), None)

    @property
    def credentials_presented(self) -> bool:
        return any(r.outcome != Outcome.NOT_APPLICABLE for r in self.trace)


class CredentialChannel(Protocol):
    name: str
    fallthrough_on_invalid: bool

    async def resolve(self, credentials: Credentials) -> ChannelResult: ...


class BearerTokenChannel:
    """``Authorization: Bearer`` channel. CPU-only until the directory lookup."""

    name = "token"

    def __init__(
        self,
        tokens: TokenService,
        directory: UserDirectory,
        *,
        fallthrough_on_invalid: bool = True,
    ) -> None:
        self.tokens = tokens
        self.directory = directory
        self.fallthrough_on_invalid = fallthrough_on_invalid

    async def resolve(self, credentials: Credentials) -> ChannelResult:
        token = credentials.bearer_token
        if not token:
            return ChannelResult.not_applicable(self.name)
        principal_id = self.tokens.verify(token)
        if principal_id is None:
            return ChannelResult.invalid(self.name, "token_invalid")
        principal = await _find_principal(self.directory, principal_id)
        if principal is None:
            return ChannelResult.invalid(self.name, "principal_missing")
        if not principal.is_active:
            return ChannelResult.invalid(self.name, "principal_inactive")
        return ChannelResult.resolved(self.name, principal)


class SessionChannel:
    """Cookie session channel; destroys sessions whose principal has vanished."""

    name = "session"
    fallthrough_on_invalid = True

    def __init__(self, sessions: SessionManager, directory: UserDirectory) -> None:
        self.sessions = sessions
        self.directory = directory

    async def resolve(self, credentials: Credentials) -> ChannelResult:
        session_id = credentials.session_id
        if not session_id:
            return ChannelResult.not_applicable(self.name)
        principal_id = await self.sessions.resolve(session_id)
        if principal_id is None:
            return ChannelResult.invalid(self.name, "session_unknown")
        principal = await _find_principal(self.directory, principal_id)
        if principal is None:
            await self.sessions.destroy(session_id)
            logger.info(
                "session_repair_destroyed", session_id=session_id, user_id=principal_id
            )
            return ChannelResult.invalid(self.name, "session_orphaned")
        if not principal.is_active:
            return ChannelResult.invalid(self.name, "principal_inactive")
        return ChannelResult.resolved(self.name, principal)


class CredentialResolver:
    """Folds over the ordered credential channels, stopping at the first hit.

    ``authenticate`` is the hard-fail variant for private endpoints: total
    exhaustion yields UNAUTHENTICATED and an infrastructure fault yields
    INTERNAL_ERROR. ``authenticate_optional`` never rejects; every failure,
    faults included, collapses to ANONYMOUS while the trace still records what
    happened.
    """

    def __init__(self, channels: Sequence[CredentialChannel]) -> None:
        self.channels = list(channels)

    @classmethod
    def build(
        cls,
        tokens: TokenService,
        sessions: SessionManager,
        directory: UserDirectory,
        *,
        token_fallthrough: bool = True,
    ) -> "CredentialResolver":
        # Token first: verification is stateless, sessions cost a store round trip
        return cls(
            [
                BearerTokenChannel(
                    tokens, directory, fallthrough_on_invalid=token_fallthrough
                ),
                SessionChannel(sessions, directory),
            ]
        )

    async def _fold(self, credentials: Credentials, *, soft: bool) -> AuthResult:
        trace: List[ChannelResult] = []
        for channel in self.channels:
            try:
                result = await channel.resolve(credentials)
            except Exception as exc:
                result = ChannelResult.fault(channel.name, exc)
            trace.append(result)
            logger.debug(
                "auth_channel_result",
                channel=result.channel,
                outcome=result.outcome.value,
                reason=result.reason,
            )
            if result.outcome == Outcome.RESOLVED:
                return AuthResult(
                    AuthStatus.AUTHENTICATED,
                    principal=result.principal,
                    channel=result.channel,
                    trace=trace,
                )
            if result.outcome == Outcome.FAULT:
                logger.error(
                    "auth_channel_fault",
                    channel=result.channel,
                    soft=soft,
                    error_type=result.reason,
                    error=str(result.error),
                    exc_info=result.error,
                )
                status = AuthStatus.ANONYMOUS if soft else AuthStatus.INTERNAL_ERROR
                return AuthResult(status, trace=trace)
            if result.outcome == Outcome.INVALID and not channel.fallthrough_on_invalid:
                break
        status = AuthStatus.ANONYMOUS if soft else AuthStatus.UNAUTHENTICATED
        return AuthResult(status, trace=trace)

    async def authenticate(self, credentials: Credentials) -> AuthResult:
        return await self._fold(credentials, soft=False)

    async def authenticate_optional(self, credentials: Credentials) -> AuthResult:
        return await self._fold(credentials, soft=True)
