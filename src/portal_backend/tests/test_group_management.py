"""
Tests for group membership and group permission management.
"""

import pytest
from fastapi import HTTPException

from portal_backend.cache import keys
from portal_backend.model.group import Group, GroupPermission, Permission, UserGroup
from portal_backend.permissions.management import (
    after_group_update,
    after_permission_change,
    assign_groups_to_user,
    assign_permissions_to_group,
    delete_group,
)


def memberships(db, user_id):
    return sorted(
        codename for (codename,) in
        db.query(Group.codename).join(UserGroup, UserGroup.group_id == Group.id).filter(UserGroup.user_id == user_id).all()
    )


class TestAssignGroups:

    @pytest.mark.asyncio
    async def test_replaces_memberships(self, db, regular_user, superuser):
        groups = await assign_groups_to_user(db, regular_user.id, ["agent", "admin"], assigned_by=superuser.id)

        assert [g.codename for g in groups] == ["agent", "admin"]
        assert memberships(db, regular_user.id) == ["admin", "agent"]
        assigned_by = {ug.assigned_by_user_id for ug in db.query(UserGroup).filter(UserGroup.user_id == regular_user.id)}
        assert assigned_by == {superuser.id}

    @pytest.mark.asyncio
    async def test_unknown_group_changes_nothing(self, db, regular_user):
        with pytest.raises(HTTPException) as exc_info:
            await assign_groups_to_user(db, regular_user.id, ["agent", "no_such_group"])

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Groups not found: no_such_group"
        assert memberships(db, regular_user.id) == ["user"]

    @pytest.mark.asyncio
    async def test_missing_default_group_is_created(self, db, regular_user):
        db.query(Group).filter(Group.codename == "agent").delete()
        db.commit()

        await assign_groups_to_user(db, regular_user.id, ["agent"])

        agent = db.query(Group).filter(Group.codename == "agent").one()
        assert agent.is_system is True
        assert memberships(db, regular_user.id) == ["agent"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        with pytest.raises(HTTPException) as exc_info:
            await assign_groups_to_user(db, "6c0e9a43-0000-4000-8000-000000000000", ["user"])

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_invalidates_permission_cache(self, db, cache, regular_user):
        await cache.set(keys.user_permissions_key(regular_user.id), ["stale"])
        await cache.set(keys.user_groups_key(regular_user.id), [])
        await cache.set(keys.groups_all_key(), [])

        await assign_groups_to_user(db, regular_user.id, ["agent"])

        assert await cache.get(keys.user_permissions_key(regular_user.id)) is None
        assert await cache.get(keys.user_groups_key(regular_user.id)) is None
        assert await cache.get(keys.groups_all_key()) is None


class TestGroupPermissions:

    @pytest.mark.asyncio
    async def test_replace_permissions_invalidates_members(self, db, cache, regular_user, other_user, admin_user):
        user_group = db.query(Group).filter(Group.codename == "user").one()
        view_users = db.query(Permission).filter(Permission.codename == "view_users").one()
        for user in (regular_user, other_user, admin_user):
            await cache.set(keys.user_permissions_key(user.id), ["stale"])

        await assign_permissions_to_group(db, user_group.id, [view_users.id])

        assert db.query(GroupPermission).filter(GroupPermission.group_id == user_group.id).count() == 1
        assert await cache.get(keys.user_permissions_key(regular_user.id)) is None
        assert await cache.get(keys.user_permissions_key(other_user.id)) is None
        # not a member of the changed group
        assert await cache.get(keys.user_permissions_key(admin_user.id)) == ["stale"]

    @pytest.mark.asyncio
    async def test_unknown_permission_rejected(self, db):
        group = db.query(Group).filter(Group.codename == "user").one()
        before = db.query(GroupPermission).filter(GroupPermission.group_id == group.id).count()

        with pytest.raises(HTTPException) as exc_info:
            await assign_permissions_to_group(db, group.id, ["6c0e9a43-0000-4000-8000-000000000000"])

        assert exc_info.value.status_code == 400
        assert db.query(GroupPermission).filter(GroupPermission.group_id == group.id).count() == before

    @pytest.mark.asyncio
    async def test_empty_set_clears_permissions(self, db):
        group = db.query(Group).filter(Group.codename == "agent").one()

        await assign_permissions_to_group(db, group.id, [])

        assert db.query(GroupPermission).filter(GroupPermission.group_id == group.id).count() == 0


class TestGroupLifecycle:

    @pytest.mark.asyncio
    async def test_system_group_cannot_be_deleted(self, db):
        group = db.query(Group).filter(Group.codename == "user").one()

        with pytest.raises(HTTPException) as exc_info:
            await delete_group(db, group.id)

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_custom_group(self, db, cache, regular_user):
        group = Group(name="Editors", codename="editors", is_system=False)
        db.add(group)
        db.flush()
        db.add(UserGroup(user_id=regular_user.id, group_id=group.id))
        db.commit()
        group_id = group.id
        await cache.set(keys.user_permissions_key(regular_user.id), ["stale"])

        await delete_group(db, group_id)

        assert db.query(Group).filter(Group.id == group_id).first() is None
        assert memberships(db, regular_user.id) == ["user"]
        assert await cache.get(keys.user_permissions_key(regular_user.id)) is None

    @pytest.mark.asyncio
    async def test_deactivation_invalidates_members(self, db, cache, regular_user, admin_user):
        group = db.query(Group).filter(Group.codename == "user").one()
        await cache.set(keys.user_permissions_key(regular_user.id), ["stale"])
        await cache.set(keys.user_permissions_key(admin_user.id), ["stale"])

        group.is_active = False
        db.commit()
        await after_group_update(db, group, membership_affected=True)

        assert await cache.get(keys.user_permissions_key(regular_user.id)) is None
        assert await cache.get(keys.user_permissions_key(admin_user.id)) == ["stale"]

    @pytest.mark.asyncio
    async def test_description_change_keeps_member_cache(self, db, cache, regular_user):
        group = db.query(Group).filter(Group.codename == "user").one()
        await cache.set(keys.user_permissions_key(regular_user.id), ["cached"])
        await cache.set(keys.group_key(group.id), {"id": group.id})

        await after_group_update(db, group, membership_affected=False)

        assert await cache.get(keys.user_permissions_key(regular_user.id)) == ["cached"]
        assert await cache.get(keys.group_key(group.id)) is None

    @pytest.mark.asyncio
    async def test_permission_change_invalidates_every_user(self, db, cache, regular_user, admin_user):
        await cache.set(keys.user_permissions_key(regular_user.id), ["a"])
        await cache.set(keys.user_permissions_key(admin_user.id), ["b"])
        await cache.set(keys.permissions_all_key(), [])

        await after_permission_change()

        assert await cache.keys() == []
