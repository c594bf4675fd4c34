"""Unit tests for the role gate."""

import pytest

from gadamagado.service.errors import AuthenticationError, ForbiddenError
from gadamagado.service.roles import authorize
from gadamagado.storage.models import Principal, Role


def _principal(role):
    return Principal(
        id="p-1",
        full_name="Test Person",
        phone_number="+252610000009",
        password_hash="x",
        role=role,
    )


def test_no_principal_is_401():
    guard = authorize("admin")

    with pytest.raises(AuthenticationError) as excinfo:
        guard(None)

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Not authorized"


def test_wrong_role_is_403_naming_role_and_action():
    guard = authorize("admin", action="the user directory")

    with pytest.raises(ForbiddenError) as excinfo:
        guard(_principal("user"))

    assert excinfo.value.status_code == 403
    assert excinfo.value.message == "User role user is not authorized to access the user directory"
    assert excinfo.value.detail == {"required": ["admin"], "actual": "user"}


def test_default_action_wording():
    with pytest.raises(ForbiddenError) as excinfo:
        authorize("admin")(_principal("user"))

    assert excinfo.value.message.endswith("is not authorized to access this route")


def test_allowed_role_passes_through():
    principal = _principal("admin")

    assert authorize("admin")(principal) is principal


def test_any_of_several_roles_and_enum_members():
    guard = authorize(Role.USER, Role.ADMIN)

    assert guard(_principal("user")).role == "user"
    assert guard(_principal("admin")).role == "admin"


def test_no_roles_admits_nobody():
    with pytest.raises(ForbiddenError):
        authorize()(_principal("admin"))
