from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Path, Query, Request, Response

from gadamagado.api.schemas import (
    AdReferenceRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
)
from gadamagado.logging import get_logger
from gadamagado.service.accounts import LoginResult
from gadamagado.service.auth import AuthStatus, Credentials
from gadamagado.service.errors import AuthenticationError, ServerError
from gadamagado.service.roles import authorize
from gadamagado.service.runtime import get_runtime
from gadamagado.storage.models import Principal, Role

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_NOT_AUTHORIZED = "Not authorized to access this route"


def _credentials(request: Request, authorization: Optional[str]) -> Credentials:
    cookie_name = get_runtime().settings.session_cookie_name
    return Credentials(
        authorization=authorization,
        session_id=request.cookies.get(cookie_name),
    )


async def protect(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Principal:
    """Hard-fail dependency: resolve a principal or reject the request."""
    runtime = get_runtime()
    result = await runtime.resolver.authenticate(_credentials(request, authorization))
    if result.status == AuthStatus.INTERNAL_ERROR:
        fault = result.fault
        raise ServerError(
            "Authentication failed",
            detail={"channel": fault.channel if fault else None},
        )
    if not result.authenticated:
        raise AuthenticationError(_NOT_AUTHORIZED)
    request.state.user = result.principal
    return result.principal


async def attach_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[Principal]:
    """Soft dependency: attach the principal when one resolves, never reject."""
    runtime = get_runtime()
    result = await runtime.resolver.authenticate_optional(
        _credentials(request, authorization)
    )
    request.state.user = result.principal
    return result.principal


def require_roles(*roles: str, action: str = "this route"):
    guard = authorize(*roles, action=action)

    async def dependency(principal: Principal = Depends(protect)) -> Principal:
        return guard(principal)

    return dependency


def _apply_session_cookie(response: Response, login: LoginResult) -> None:
    settings = get_runtime().settings
    response.set_cookie(
        settings.session_cookie_name,
        login.session.id,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=int(settings.session_ttl.total_seconds()),
        path="/",
    )


def _auth_payload(message: str, login: LoginResult) -> Dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "token": login.token,
        "user": login.principal.public_view(),
    }


@router.post("/auth/register", status_code=201, tags=["auth"])
async def register(body: RegisterRequest, response: Response):
    """Create an account and sign it in on both channels.

    Sets the session cookie and returns a bearer token for clients that do
    not keep cookies.

    Raises:
        400: If a required field is missing or the phone number is taken
    """
    runtime = get_runtime()
    result = await runtime.accounts.register(
        full_name=body.full_name,
        phone_number=body.phone_number,
        password=body.password,
        region=body.region,
        district=body.district,
        email=body.email,
    )
    _apply_session_cookie(response, result)
    return _auth_payload("Registration successful", result)


@router.post("/auth/login", tags=["auth"])
async def login(body: LoginRequest, response: Response):
    """Authenticate with phone number and password.

    Raises:
        400: If phone number or password is missing
        401: If the credentials do not match an active account
    """
    runtime = get_runtime()
    result = await runtime.accounts.login(body.phone_number, body.password)
    _apply_session_cookie(response, result)
    return _auth_payload("Login successful", result)


@router.post("/auth/logout", tags=["auth"])
async def logout(request: Request, response: Response):
    runtime = get_runtime()
    cookie_name = runtime.settings.session_cookie_name
    await runtime.accounts.logout(request.cookies.get(cookie_name))
    response.delete_cookie(
        cookie_name, path="/", secure=runtime.settings.cookie_secure, samesite="lax"
    )
    return {"success": True, "message": "Logged out successfully"}


@router.get("/auth/status", tags=["auth"])
async def auth_status(principal: Optional[Principal] = Depends(attach_user)):
    if principal is None:
        return {"success": True, "authenticated": False}
    return {"success": True, "authenticated": True, "userId": principal.id}


@router.get("/auth/me", tags=["auth"])
async def me(principal: Principal = Depends(protect)):
    return {"success": True, "user": principal.public_view()}


@router.get("/users/profile", tags=["users"])
async def get_profile(principal: Principal = Depends(protect)):
    user = get_runtime().accounts.get_profile(principal.id)
    return {"success": True, "user": user.public_view()}


@router.put("/users/profile", tags=["users"])
async def update_profile(
    body: ProfileUpdateRequest, principal: Principal = Depends(protect)
):
    user = get_runtime().accounts.update_profile(
        principal.id,
        full_name=body.full_name,
        email=body.email,
        region=body.region,
        district=body.district,
    )
    return {"success": True, "user": user.public_view()}


@router.get("/users/favorites", tags=["users"])
async def list_favorites(principal: Principal = Depends(protect)):
    return {"success": True, "favorites": get_runtime().accounts.favorites(principal.id)}


@router.post("/users/favorites", tags=["users"])
async def add_favorite(body: AdReferenceRequest, principal: Principal = Depends(protect)):
    favorites = get_runtime().accounts.add_favorite(principal.id, body.ad_id)
    return {"success": True, "favorites": favorites}


@router.delete("/users/favorites/{ad_id}", tags=["users"])
async def remove_favorite(
    ad_id: str = Path(..., max_length=64), principal: Principal = Depends(protect)
):
    favorites = get_runtime().accounts.remove_favorite(principal.id, ad_id)
    return {"success": True, "favorites": favorites}


@router.get("/users/recently-viewed", tags=["users"])
async def list_recently_viewed(principal: Principal = Depends(protect)):
    items = get_runtime().accounts.recently_viewed(principal.id)
    return {"success": True, "recentlyViewed": items}


@router.post("/users/recently-viewed", tags=["users"])
async def push_recently_viewed(
    body: AdReferenceRequest, principal: Principal = Depends(protect)
):
    items = get_runtime().accounts.push_recently_viewed(principal.id, body.ad_id)
    return {"success": True, "recentlyViewed": items}


@router.get("/admin/users", tags=["admin"])
async def admin_list_users(
    limit: int = Query(100, ge=1, le=1000),
    principal: Principal = Depends(
        require_roles(Role.ADMIN.value, action="the user directory")
    ),
):
    users = get_runtime().accounts.list_users(limit=limit)
    logger.info("admin_users_listed", admin_id=principal.id, count=len(users))
    return {
        "success": True,
        "count": len(users),
        "users": [user.public_view() for user in users],
    }
