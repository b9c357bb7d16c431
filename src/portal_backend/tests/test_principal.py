"""
Tests for the Principal model and permission checks, without a database.
"""

import pytest
from fastapi import HTTPException

from portal_backend.permissions.core import check_permission, format_required
from portal_backend.permissions.principal import Principal


def make_principal(**kwargs):
    kwargs.setdefault("user_id", "user-1")
    return Principal(**kwargs)


class TestPrincipalFlags:
    """Superuser and admin flags are derived from group membership"""

    def test_super_admin(self):
        principal = make_principal(groups=["super_admin"])
        assert principal.is_superuser is True
        assert principal.is_admin is True

    def test_admin(self):
        principal = make_principal(groups=["admin", "user"])
        assert principal.is_superuser is False
        assert principal.is_admin is True

    def test_regular_user(self):
        principal = make_principal(groups=["user"])
        assert principal.is_superuser is False
        assert principal.is_admin is False

    def test_delegated_principal_has_no_elevated_flags(self):
        principal = make_principal(
            groups=["super_admin"], is_superuser=True, acting_for="owner-1", actor_id="user-2",
        )
        assert principal.is_delegated is True
        assert principal.is_superuser is False
        assert principal.is_admin is False


class TestPermitted:

    def test_any_of(self):
        principal = make_principal(permissions=["view_users"])
        assert principal.permitted(["view_users", "add_user"]) is True
        assert principal.permitted(["delete_user", "add_user"]) is False

    def test_all_of(self):
        principal = make_principal(permissions=["view_users", "add_user"])
        assert principal.permitted(["view_users", "add_user"], require_all=True) is True
        assert principal.permitted(["view_users", "delete_user"], require_all=True) is False

    def test_empty_requirements(self):
        principal = make_principal(permissions=["view_users"])
        assert principal.permitted([]) is False
        assert principal.permitted([], require_all=True) is True

    def test_superuser_bypasses_everything(self):
        principal = make_principal(groups=["super_admin"])
        assert principal.permitted("anything") is True
        assert principal.missing(["a", "b"]) == []

    def test_anonymous_is_never_permitted(self):
        principal = make_principal(user_id=None, permissions=["view_users"])
        assert principal.permitted("view_users") is False

    def test_missing(self):
        principal = make_principal(permissions=["view_users"])
        assert principal.missing(["view_users", "add_user", "delete_user"]) == ["add_user", "delete_user"]


class TestCheckPermission:

    def test_passes(self):
        principal = make_principal(permissions=["view_users"])
        assert check_permission(principal, "view_users") is principal

    def test_single_permission_denied(self):
        principal = make_principal(permissions=[])

        with pytest.raises(HTTPException) as exc_info:
            check_permission(principal, "view_users")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == {
            "message": "You do not have access to this resource. Required permission: view_users",
            "required_permissions": ["view_users"],
        }

    def test_any_of_denied(self):
        principal = make_principal(permissions=[])

        with pytest.raises(HTTPException) as exc_info:
            check_permission(principal, ["view_activity_log", "view_user_activity_log"])

        assert exc_info.value.detail["message"].endswith(
            "Required permission: one of: view_activity_log or view_user_activity_log"
        )

    def test_all_of_reports_first_missing(self):
        principal = make_principal(permissions=["view_users"])

        with pytest.raises(HTTPException) as exc_info:
            check_permission(principal, ["view_users", "add_user", "edit_user"], require_all=True)

        assert exc_info.value.detail["required_permissions"] == ["add_user"]

    def test_unauthenticated(self):
        with pytest.raises(HTTPException) as exc_info:
            check_permission(None, "view_users")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["message"] == "User not authenticated"

    def test_superuser(self):
        principal = make_principal(groups=["super_admin"])
        assert check_permission(principal, ["x", "y"], require_all=True) is principal

    def test_format_required(self):
        assert format_required(["a"], False) == "a"
        assert format_required(["a", "b"], False) == "one of: a or b"
        assert format_required(["a", "b"], True) == "all of: a, b"
