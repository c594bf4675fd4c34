from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass fixes the HTTP status code; the message is what the client
    sees in the ``{"success": false, "message": ...}`` body, so it must never
    carry internal detail. Put diagnostic context in ``detail`` instead; it is
    logged but not returned.
    """

    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400


class AuthenticationError(ServiceError):
    """No valid credential on any channel (401)."""
    status_code = 401


class ForbiddenError(ServiceError):
    """Authenticated principal lacks the required role (403)."""
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ServerError(ServiceError):
    """Directory or session store fault (500)."""
    status_code = 500


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ServerError",
]
