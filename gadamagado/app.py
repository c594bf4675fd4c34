from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gadamagado.api.error_handling import register_exception_handlers
from gadamagado.api.routes import router
from gadamagado.config import AppEnv, Settings
from gadamagado.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

_settings = Settings.from_env()

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup and release the session store on shutdown."""
    from gadamagado.service.runtime import get_runtime

    get_runtime()
    logger.info("app_started", app_env=_settings.app_env.value)

    yield

    try:
        await get_runtime().close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Gad ama Gado API", version=__version__, lifespan=lifespan)


def _allow_credentials() -> bool:
    # Browsers refuse credentialed responses to a wildcard origin
    return "*" not in _settings.cors_allow_origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allow_origins,
    allow_credentials=_allow_credentials(),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation ID for log tracing.

    Taken from the client's X-Request-ID header when present, otherwise
    generated, and echoed back in the response's X-Request-ID header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


register_exception_handlers(
    app, expose_errors=_settings.app_env == AppEnv.DEVELOPMENT
)
app.include_router(router)


@app.get("/")
async def root() -> Dict[str, Any]:
    return {
        "success": True,
        "message": "Gad ama Gado API is running",
        "version": __version__,
        "endpoints": {
            "auth": "/api/v1/auth",
            "users": "/api/v1/users",
            "admin": "/api/v1/admin",
        },
    }


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "success": True,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
