"""
Tests for permission resolution against the seeded groups.
"""

import pytest

from portal_backend.cache import keys
from portal_backend.cache.invalidation import invalidate_user_permissions_cache
from portal_backend.model.group import Group, GroupPermission, Permission
from portal_backend.model.seeder import DEFAULT_GROUPS
from portal_backend.permissions.core import PermissionResolver, db_get_user_permissions


class TestResolution:
    """Permissions are the union over active groups"""

    @pytest.mark.asyncio
    async def test_regular_user_gets_user_group_permissions(self, db, regular_user):
        permissions = await PermissionResolver(db).get_user_permissions(regular_user.id)

        assert permissions == sorted(set(DEFAULT_GROUPS["user"]["permissions"]))
        assert "view_users" not in permissions

    @pytest.mark.asyncio
    async def test_union_of_groups(self, db, make_user):
        user = make_user("multi@example.com", groups=("user", "agent"))

        permissions = set(await PermissionResolver(db).get_user_permissions(user.id))

        assert "add_notification" in permissions  # agent
        assert "add_upload" in permissions  # user

    @pytest.mark.asyncio
    async def test_inactive_group_is_ignored(self, db, make_user):
        user = make_user("agent@example.com", groups=("agent",))
        agent = db.query(Group).filter(Group.codename == "agent").one()
        agent.is_active = False
        db.commit()

        assert await PermissionResolver(db).get_user_permissions(user.id) == []

    @pytest.mark.asyncio
    async def test_user_without_groups(self, db, make_user):
        user = make_user("nobody@example.com", groups=())
        assert await PermissionResolver(db).get_user_permissions(user.id) == []

    @pytest.mark.asyncio
    async def test_any_and_all_with_empty_lists(self, db, regular_user):
        resolver = PermissionResolver(db)
        assert await resolver.has_any_permission(regular_user.id, []) is False
        assert await resolver.has_all_permissions(regular_user.id, []) is True
        assert await resolver.has_any_permission(regular_user.id, ["view_users", "view_media"]) is True
        assert await resolver.has_all_permissions(regular_user.id, ["view_users", "view_media"]) is False

    @pytest.mark.asyncio
    async def test_has_permission_without_cache_entry(self, db, regular_user):
        resolver = PermissionResolver(db)
        assert await resolver.has_permission(regular_user.id, "view_media") is True
        assert await resolver.has_permission(regular_user.id, "delete_user") is False

    def test_superuser_and_admin_checks(self, db, superuser, admin_user, regular_user):
        resolver = PermissionResolver(db)
        assert resolver.is_superuser(superuser.id) is True
        assert resolver.is_admin(superuser.id) is True
        assert resolver.is_superuser(admin_user.id) is False
        assert resolver.is_admin(admin_user.id) is True
        assert resolver.is_admin(regular_user.id) is False


class TestCaching:
    """Resolved sets are cached until invalidated"""

    @pytest.mark.asyncio
    async def test_result_is_cached(self, db, cache, regular_user):
        permissions = await PermissionResolver(db).get_user_permissions(regular_user.id)

        assert await cache.get(keys.user_permissions_key(regular_user.id)) == permissions

    @pytest.mark.asyncio
    async def test_invalidation_makes_changes_visible(self, db, regular_user):
        resolver = PermissionResolver(db)
        assert "view_users" not in await resolver.get_user_permissions(regular_user.id)

        group = db.query(Group).filter(Group.codename == "user").one()
        view_users = db.query(Permission).filter(Permission.codename == "view_users").one()
        db.add(GroupPermission(group_id=group.id, permission_id=view_users.id))
        db.commit()

        # cached set still served
        assert "view_users" not in await resolver.get_user_permissions(regular_user.id)

        await invalidate_user_permissions_cache(regular_user.id)
        assert "view_users" in await resolver.get_user_permissions(regular_user.id)

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, db, cache, regular_user):
        await cache.set(keys.user_permissions_key(regular_user.id), ["stale"])

        permissions = await PermissionResolver(db).get_user_permissions(regular_user.id, force_refresh=True)

        assert permissions == db_get_user_permissions(regular_user.id, db)
        assert await cache.get(keys.user_permissions_key(regular_user.id)) == permissions

    @pytest.mark.asyncio
    async def test_has_permission_uses_cached_set(self, db, cache, regular_user):
        await cache.set(keys.user_permissions_key(regular_user.id), ["delete_user"])

        assert await PermissionResolver(db).has_permission(regular_user.id, "delete_user") is True

    @pytest.mark.asyncio
    async def test_groups_are_cached(self, db, cache, regular_user):
        groups = await PermissionResolver(db).get_user_groups(regular_user.id)

        assert [g["codename"] for g in groups] == ["user"]
        assert await cache.get(keys.user_groups_key(regular_user.id)) == groups


class TestPrincipal:

    @pytest.mark.asyncio
    async def test_build_principal_for_superuser(self, db, superuser):
        principal = await PermissionResolver(db).build_principal(superuser.id, superuser.email)

        assert principal.groups == ["super_admin"]
        assert principal.is_superuser is True
        assert principal.is_admin is True
        assert principal.permitted("anything")

    @pytest.mark.asyncio
    async def test_build_principal_for_regular_user(self, db, regular_user):
        principal = await PermissionResolver(db).build_principal(regular_user.id)

        assert principal.is_superuser is False
        assert principal.permitted("view_media")
        assert not principal.permitted("view_users")

    def test_groups_with_permissions(self, db, admin_user):
        groups = PermissionResolver(db).get_user_groups_with_permissions(admin_user.id)

        assert len(groups) == 1
        assert groups[0]["codename"] == "admin"
        assert "delete_user" not in groups[0]["permissions"]
        assert "view_users" in groups[0]["permissions"]

    @pytest.mark.asyncio
    async def test_permission_details(self, db, regular_user):
        details = await PermissionResolver(db).get_user_permission_details(regular_user.id)

        codenames = [d["codename"] for d in details]
        assert sorted(codenames) == sorted(set(DEFAULT_GROUPS["user"]["permissions"]))
        assert all({"id", "name", "category"} <= set(d) for d in details)

    @pytest.mark.asyncio
    async def test_permission_details_are_cached(self, db, cache, regular_user):
        resolver = PermissionResolver(db)
        await resolver.get_user_permission_details(regular_user.id)
        key = keys.user_permission_details_key(regular_user.id)
        await cache.set(key, [{"codename": "stale"}])

        cached = await resolver.get_user_permission_details(regular_user.id)
        refreshed = await resolver.get_user_permission_details(regular_user.id, force_refresh=True)

        assert cached == [{"codename": "stale"}]
        assert "view_media" in [d["codename"] for d in refreshed]
        assert await cache.get(key) == refreshed
