"""Unit tests for dual-channel credential resolution.

Tests for:
- Token-first ordering and the stateless token fast path
- Fallthrough from an invalid token to the session cookie
- Session repair when the bound principal no longer exists
- Fault handling in hard and soft modes
"""

from datetime import timedelta

import pytest

from gadamagado.service.auth import (
    AuthStatus,
    BearerTokenChannel,
    ChannelResult,
    CredentialResolver,
    Credentials,
    Outcome,
    SessionChannel,
)
from gadamagado.service.sessions import SessionManager
from gadamagado.service.tokens import TokenService
from gadamagado.storage.errors import StoreUnavailable
from gadamagado.storage.memory import MemorySessionStore, MemoryStore


class SpySessionStore(MemorySessionStore):
    """Records every call so tests can assert the store was never touched."""

    def __init__(self, clock):
        super().__init__(clock)
        self.calls = []
        self.fail_get = False
        self.fail_destroy = False

    async def get_session(self, session_id):
        self.calls.append(("get", session_id))
        if self.fail_get:
            raise StoreUnavailable("connection refused", backend="redis")
        return await super().get_session(session_id)

    async def save_session(self, record, ttl_seconds):
        self.calls.append(("save", record.id))
        await super().save_session(record, ttl_seconds)

    async def destroy_session(self, session_id):
        self.calls.append(("destroy", session_id))
        if self.fail_destroy:
            raise StoreUnavailable("connection refused", backend="redis")
        await super().destroy_session(session_id)


class UnreachableDirectory:
    def find_by_id(self, user_id):
        raise ConnectionError("directory unreachable")

    def find_by_handle(self, phone_number):
        raise ConnectionError("directory unreachable")

    def verify_secret(self, principal, plaintext):
        return False


class AsyncDirectory:
    """Directory whose lookup is a coroutine, like a networked backend."""

    def __init__(self, store):
        self.store = store
        self.lookups = []

    async def find_by_id(self, user_id):
        self.lookups.append(user_id)
        return self.store.find_by_id(user_id)

    def find_by_handle(self, phone_number):
        return self.store.find_by_handle(phone_number)

    def verify_secret(self, principal, plaintext):
        return self.store.verify_secret(principal, plaintext)


@pytest.fixture
def directory(fast_hasher):
    return MemoryStore(password_hasher=fast_hasher)


@pytest.fixture
def alice(directory):
    return directory.create_user(
        full_name="Alice Warsame",
        phone_number="+252610000001",
        password="alice-pass",
        region="Banaadir",
        district="Hodan",
    )


@pytest.fixture
def bob(directory):
    return directory.create_user(
        full_name="Bob Farah",
        phone_number="+252610000002",
        password="bob-pass",
        region="Woqooyi Galbeed",
        district="Hargeisa",
    )


@pytest.fixture
def session_store(clock):
    return SpySessionStore(clock)


@pytest.fixture
def tokens(clock):
    return TokenService("resolver-test-secret-0123456789abcdef", timedelta(days=30), clock=clock)


@pytest.fixture
def sessions(session_store, clock):
    return SessionManager(session_store, timedelta(days=14), clock=clock)


@pytest.fixture
def resolver(tokens, sessions, directory):
    return CredentialResolver.build(tokens, sessions, directory)


def _bearer(token):
    return f"Bearer {token}"


class TestTokenChannel:
    async def test_valid_token_never_touches_session_store(
        self, resolver, tokens, sessions, session_store, alice, bob
    ):
        record = await sessions.create(bob.id)
        session_store.calls.clear()

        result = await resolver.authenticate(
            Credentials(authorization=_bearer(tokens.issue(alice.id)), session_id=record.id)
        )

        assert result.status == AuthStatus.AUTHENTICATED
        assert result.principal.id == alice.id
        assert result.channel == "token"
        assert [r.outcome for r in result.trace] == [Outcome.RESOLVED]
        assert session_store.calls == []

    async def test_token_wins_over_session_for_different_principals(
        self, resolver, tokens, sessions, alice, bob
    ):
        record = await sessions.create(bob.id)

        result = await resolver.authenticate_optional(
            Credentials(authorization=_bearer(tokens.issue(alice.id)), session_id=record.id)
        )

        assert result.principal.id == alice.id

    async def test_non_bearer_header_is_not_applicable(self, resolver):
        result = await resolver.authenticate(Credentials(authorization="Basic dXNlcjpwYXNz"))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[0] == ChannelResult.not_applicable("token")
        assert not result.credentials_presented

    async def test_token_for_deleted_principal_is_invalid(
        self, resolver, tokens, directory, alice
    ):
        token = tokens.issue(alice.id)
        directory.delete_user(alice.id)

        result = await resolver.authenticate(Credentials(authorization=_bearer(token)))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[0].reason == "principal_missing"

    async def test_expired_token_is_invalid(self, resolver, tokens, clock, alice):
        token = tokens.issue(alice.id)
        clock.advance(days=31)

        result = await resolver.authenticate(Credentials(authorization=_bearer(token)))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[0].outcome == Outcome.INVALID
        assert result.trace[0].reason == "token_invalid"


class TestFallthrough:
    async def test_invalid_token_falls_through_to_session(
        self, resolver, sessions, alice
    ):
        record = await sessions.create(alice.id)

        result = await resolver.authenticate(
            Credentials(authorization=_bearer("garbage.token.value"), session_id=record.id)
        )

        assert result.status == AuthStatus.AUTHENTICATED
        assert result.channel == "session"
        assert [r.outcome for r in result.trace] == [Outcome.INVALID, Outcome.RESOLVED]

    async def test_fallthrough_disabled_stops_at_invalid_token(
        self, tokens, sessions, session_store, directory, alice
    ):
        resolver = CredentialResolver.build(
            tokens, sessions, directory, token_fallthrough=False
        )
        record = await sessions.create(alice.id)
        session_store.calls.clear()
        credentials = Credentials(
            authorization=_bearer("garbage.token.value"), session_id=record.id
        )

        hard = await resolver.authenticate(credentials)
        soft = await resolver.authenticate_optional(credentials)

        assert hard.status == AuthStatus.UNAUTHENTICATED
        assert soft.status == AuthStatus.ANONYMOUS
        assert soft.principal is None
        assert session_store.calls == []

    async def test_fallthrough_disabled_still_uses_session_without_token(
        self, tokens, sessions, directory, alice
    ):
        resolver = CredentialResolver.build(
            tokens, sessions, directory, token_fallthrough=False
        )
        record = await sessions.create(alice.id)

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.principal.id == alice.id


class TestSessionChannel:
    async def test_session_resolves_principal(self, resolver, sessions, alice):
        record = await sessions.create(alice.id)

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.status == AuthStatus.AUTHENTICATED
        assert result.principal.id == alice.id
        assert result.principal.password_hash  # full record, routes pick the public view

    async def test_unknown_session_is_unauthenticated(self, resolver):
        result = await resolver.authenticate(Credentials(session_id="no-such-session"))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[-1].reason == "session_unknown"
        assert result.credentials_presented

    async def test_session_repair_destroys_orphaned_session(
        self, resolver, sessions, session_store, directory, alice
    ):
        record = await sessions.create(alice.id)
        directory.delete_user(alice.id)

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[-1].reason == "session_orphaned"
        assert ("destroy", record.id) in session_store.calls
        assert record.id not in session_store.sessions

    async def test_session_repair_in_soft_mode_is_anonymous(
        self, resolver, sessions, session_store, directory, alice
    ):
        record = await sessions.create(alice.id)
        directory.delete_user(alice.id)

        result = await resolver.authenticate_optional(Credentials(session_id=record.id))

        assert result.status == AuthStatus.ANONYMOUS
        assert result.principal is None
        assert result.trace[-1].reason == "session_orphaned"
        assert record.id not in session_store.sessions

    async def test_repaired_session_id_stays_rejected(
        self, resolver, sessions, directory, alice
    ):
        record = await sessions.create(alice.id)
        directory.delete_user(alice.id)
        await resolver.authenticate(Credentials(session_id=record.id))

        again = await resolver.authenticate(Credentials(session_id=record.id))

        assert again.status == AuthStatus.UNAUTHENTICATED
        assert again.trace[-1].reason == "session_unknown"

    async def test_session_repair_failure_is_not_a_fault(
        self, resolver, sessions, session_store, directory, alice
    ):
        record = await sessions.create(alice.id)
        directory.delete_user(alice.id)
        session_store.fail_destroy = True

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.fault is None

    async def test_inactive_principal_rejected_without_repair(
        self, resolver, sessions, session_store, directory, alice
    ):
        record = await sessions.create(alice.id)
        directory.set_active(alice.id, False)

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.status == AuthStatus.UNAUTHENTICATED
        assert result.trace[-1].reason == "principal_inactive"
        assert record.id in session_store.sessions


class TestModes:
    async def test_no_credentials(self, resolver):
        hard = await resolver.authenticate(Credentials())
        soft = await resolver.authenticate_optional(Credentials())

        assert hard.status == AuthStatus.UNAUTHENTICATED
        assert soft.status == AuthStatus.ANONYMOUS
        assert not hard.credentials_presented
        assert [r.outcome for r in hard.trace] == [
            Outcome.NOT_APPLICABLE,
            Outcome.NOT_APPLICABLE,
        ]

    async def test_session_store_fault_is_internal_error(
        self, resolver, sessions, session_store, alice
    ):
        record = await sessions.create(alice.id)
        session_store.fail_get = True

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.status == AuthStatus.INTERNAL_ERROR
        assert result.principal is None
        assert result.fault.channel == "session"
        assert isinstance(result.fault.error, StoreUnavailable)

    async def test_session_store_fault_is_anonymous_in_soft_mode(
        self, resolver, sessions, session_store, alice
    ):
        record = await sessions.create(alice.id)
        session_store.fail_get = True

        result = await resolver.authenticate_optional(Credentials(session_id=record.id))

        assert result.status == AuthStatus.ANONYMOUS
        assert result.principal is None
        assert result.fault is not None

    async def test_directory_fault_on_token_path_is_internal_error(
        self, tokens, sessions, session_store
    ):
        resolver = CredentialResolver.build(tokens, sessions, UnreachableDirectory())

        result = await resolver.authenticate(
            Credentials(authorization=_bearer(tokens.issue("someone")), session_id="sid")
        )

        assert result.status == AuthStatus.INTERNAL_ERROR
        assert result.fault.channel == "token"
        assert session_store.calls == []

    async def test_custom_channel_order(self, tokens, sessions, directory, alice, bob):
        resolver = CredentialResolver(
            [SessionChannel(sessions, directory), BearerTokenChannel(tokens, directory)]
        )
        record = await sessions.create(bob.id)

        result = await resolver.authenticate(
            Credentials(authorization=_bearer(tokens.issue(alice.id)), session_id=record.id)
        )

        assert result.principal.id == bob.id
        assert result.channel == "session"


class TestAsyncDirectory:
    async def test_both_channels_await_coroutine_lookups(
        self, tokens, sessions, directory, alice, bob
    ):
        async_directory = AsyncDirectory(directory)
        resolver = CredentialResolver.build(tokens, sessions, async_directory)
        record = await sessions.create(bob.id)

        by_token = await resolver.authenticate(
            Credentials(authorization=_bearer(tokens.issue(alice.id)))
        )
        by_session = await resolver.authenticate(Credentials(session_id=record.id))

        assert by_token.principal.id == alice.id
        assert by_session.principal.id == bob.id
        assert async_directory.lookups == [alice.id, bob.id]

    async def test_session_repair_with_coroutine_lookup(
        self, tokens, sessions, session_store, directory, alice
    ):
        resolver = CredentialResolver.build(tokens, sessions, AsyncDirectory(directory))
        record = await sessions.create(alice.id)
        directory.delete_user(alice.id)

        result = await resolver.authenticate(Credentials(session_id=record.id))

        assert result.trace[-1].reason == "session_orphaned"
        assert record.id not in session_store.sessions
