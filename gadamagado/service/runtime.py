from __future__ import annotations

import threading
from datetime import timedelta
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from gadamagado.config import get_settings, reset_settings_cache
from gadamagado.logging import get_logger
from gadamagado.service.accounts import AccountService
from gadamagado.service.auth import CredentialResolver
from gadamagado.service.sessions import SessionManager
from gadamagado.service.tokens import TokenService
from gadamagado.storage.memory import MemorySessionStore, MemoryStore
from gadamagado.storage.redis_cache import RedisSessionStore, SyncRedisSessionStore
from gadamagado.storage.seed import seed_demo_users

logger = get_logger(__name__)

SessionBackend = Union[RedisSessionStore, SyncRedisSessionStore, MemorySessionStore]


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            app_env=self.settings.app_env.value,
            test_mode=self.settings.test_mode,
        )

        self.store = MemoryStore()
        self.session_store = self._init_session_store()
        self.tokens = TokenService(
            self.settings.jwt_secret,
            self.settings.token_lifetime,
            leeway=timedelta(seconds=self.settings.token_leeway_seconds),
        )
        self.sessions = SessionManager(
            self.session_store,
            self.settings.session_ttl,
            rolling=self.settings.session_rolling,
        )
        self.resolver = CredentialResolver.build(
            self.tokens,
            self.sessions,
            self.store,
            token_fallthrough=self.settings.token_fallthrough,
        )
        self.accounts = AccountService(self.store, self.tokens, self.sessions)

        if self.settings.seed_demo_users:
            seed_demo_users(self.store)

        logger.info(
            "runtime_initialized",
            session_backend=type(self.session_store).__name__,
            token_fallthrough=self.settings.token_fallthrough,
            session_rolling=self.settings.session_rolling,
        )

    def _init_session_store(self) -> SessionBackend:
        fallback_allowed = (
            self.settings.test_mode or self.settings.allow_redis_fallback_dev
        )
        if self.settings.use_memory_sessions and fallback_allowed:
            return MemorySessionStore()

        redis_error: Exception | None = None
        if self.settings.redis_url:
            try:
                # Use sync Redis client in test mode to avoid event loop issues
                if self.settings.test_mode:
                    store = SyncRedisSessionStore(self.settings.redis_url)
                else:
                    store = RedisSessionStore(self.settings.redis_url)
                store.verify_connection()
                return store
            except Exception as exc:
                redis_error = exc

        if not fallback_allowed:
            raise RuntimeError(
                "Redis is required for sessions; start Redis or set "
                "TEST_MODE=true/ALLOW_REDIS_FALLBACK_DEV=true for local fallback."
            ) from redis_error

        fallback_mode = (
            "TEST_MODE" if self.settings.test_mode else "ALLOW_REDIS_FALLBACK_DEV"
        )
        logger.warning(
            "redis_disabled_fallback",
            redis_url=_mask_url_password(self.settings.redis_url),
            error=str(redis_error) if redis_error else "redis_url_missing",
            message=f"Running without Redis under {fallback_mode}; sessions are in-memory only.",
            mode=fallback_mode,
        )
        return MemorySessionStore()

    async def close(self) -> None:
        await self.session_store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking: the unlocked read is the fast path, the
    locked re-check prevents two threads building competing runtimes.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        if runtime is not None and isinstance(runtime.session_store, SyncRedisSessionStore):
            try:
                runtime.session_store.client.close()
            except Exception as exc:
                logger.warning("runtime_reset_close_failed", error=str(exc))

        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
