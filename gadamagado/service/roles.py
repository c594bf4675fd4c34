from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Union

from gadamagado.service.errors import AuthenticationError, ForbiddenError
from gadamagado.storage.models import Principal

RoleGuard = Callable[[Optional[Principal]], Principal]


def authorize(*allowed_roles: Union[str, Enum], action: str = "this route") -> RoleGuard:
    """Build a guard admitting only principals whose role is in ``allowed_roles``.

    Pure function of already-resolved state: no principal is a 401, a
    principal with the wrong role is a 403 naming that role.
    """

    allowed = frozenset(
        role.value if isinstance(role, Enum) else str(role) for role in allowed_roles
    )

    def guard(principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise AuthenticationError("Not authorized")
        if principal.role not in allowed:
            raise ForbiddenError(
                f"User role {principal.role} is not authorized to access {action}",
                detail={"required": sorted(allowed), "actual": principal.role},
            )
        return principal

    return guard
