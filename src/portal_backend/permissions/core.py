"""
Permission resolution.

A user's permissions are the union of the permissions of every *active*
group the user belongs to:

    User -< UserGroup >- Group -< GroupPermission >- Permission

Resolved codenames are cached per user for the long tier. Any mutation that
changes group membership, group state or group permissions must invalidate
`user:{id}:permissions` for the affected users (see
`portal_backend.cache.invalidation`).
"""

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from portal_backend.api.exceptions import ForbiddenException
from portal_backend.cache import get_cache
from portal_backend.cache.hybrid import cache_ttl
from portal_backend.cache import keys
from portal_backend.interface.groups import UserGroupGet
from portal_backend.interface.permissions import PermissionGet
from portal_backend.model.group import Group, GroupPermission, Permission, UserGroup
from portal_backend.permissions.principal import ADMIN_GROUPS, SUPERUSER_GROUP, Principal

logger = logging.getLogger(__name__)

ACCESS_DENIED_MESSAGE = "You do not have access to this resource."


def db_get_user_permissions(user_id: str, db: Session) -> List[str]:
    rows = (
        db.query(Permission.codename)
        .join(GroupPermission, GroupPermission.permission_id == Permission.id)
        .join(Group, Group.id == GroupPermission.group_id)
        .join(UserGroup, UserGroup.group_id == Group.id)
        .filter(UserGroup.user_id == user_id, Group.is_active.is_(True))
        .distinct()
        .all()
    )
    return sorted({codename for (codename,) in rows})


def db_get_user_groups(user_id: str, db: Session) -> List[Group]:
    return (
        db.query(Group)
        .join(UserGroup, UserGroup.group_id == Group.id)
        .filter(UserGroup.user_id == user_id, Group.is_active.is_(True))
        .order_by(Group.name)
        .all()
    )


def db_user_in_groups(user_id: str, codenames: Sequence[str], db: Session) -> bool:
    return (
        db.query(UserGroup.id)
        .join(Group, Group.id == UserGroup.group_id)
        .filter(UserGroup.user_id == user_id, Group.codename.in_(codenames), Group.is_active.is_(True))
        .first()
        is not None
    )


class PermissionResolver:

    def __init__(self, db: Session):
        self.db = db

    async def get_user_permissions(self, user_id: str, force_refresh: bool = False) -> List[str]:
        cache = get_cache()
        key = keys.user_permissions_key(user_id)
        try:
            if not force_refresh and cache.enabled:
                cached = await cache.get(key)
                if cached is not None:
                    return cached

            permissions = db_get_user_permissions(user_id, self.db)

            if cache.enabled:
                await cache.set(key, permissions, cache_ttl("long"))
            return permissions
        except Exception as e:
            logger.error(f"Error resolving permissions for user {user_id}: {e}")
            return []

    async def has_permission(self, user_id: str, codename: str) -> bool:
        cache = get_cache()
        try:
            if cache.enabled:
                cached = await cache.get(keys.user_permissions_key(user_id))
                if cached is not None:
                    return codename in cached

            count = (
                self.db.query(GroupPermission.id)
                .join(Permission, Permission.id == GroupPermission.permission_id)
                .join(Group, Group.id == GroupPermission.group_id)
                .join(UserGroup, UserGroup.group_id == Group.id)
                .filter(
                    UserGroup.user_id == user_id,
                    Group.is_active.is_(True),
                    Permission.codename == codename,
                )
                .count()
            )
            return count > 0
        except Exception as e:
            logger.error(f"Error checking permission {codename} for user {user_id}: {e}")
            return False

    async def has_any_permission(self, user_id: str, codenames: Iterable[str]) -> bool:
        codenames = list(codenames)
        if not codenames:
            return False
        permissions = set(await self.get_user_permissions(user_id))
        return any(c in permissions for c in codenames)

    async def has_all_permissions(self, user_id: str, codenames: Iterable[str]) -> bool:
        codenames = list(codenames)
        if not codenames:
            return True
        permissions = set(await self.get_user_permissions(user_id))
        return all(c in permissions for c in codenames)

    async def get_user_groups(self, user_id: str, force_refresh: bool = False) -> List[dict]:
        cache = get_cache()
        key = keys.user_groups_key(user_id)
        try:
            if not force_refresh and cache.enabled:
                cached = await cache.get(key)
                if cached is not None:
                    return cached

            groups = [
                UserGroupGet.model_validate(g).model_dump(mode="json")
                for g in db_get_user_groups(user_id, self.db)
            ]

            if cache.enabled:
                await cache.set(key, groups, cache_ttl("long"))
            return groups
        except Exception as e:
            logger.error(f"Error resolving groups for user {user_id}: {e}")
            return []

    def get_user_groups_with_permissions(self, user_id: str) -> List[dict]:
        result = []
        for group in db_get_user_groups(user_id, self.db):
            entry = UserGroupGet.model_validate(group).model_dump(mode="json")
            entry["permissions"] = sorted(gp.permission.codename for gp in group.group_permissions)
            result.append(entry)
        return result

    async def get_user_permission_details(self, user_id: str, force_refresh: bool = False) -> List[dict]:
        cache = get_cache()
        key = keys.user_permission_details_key(user_id)

        async def fetch() -> List[dict]:
            rows = (
                self.db.query(Permission)
                .join(GroupPermission, GroupPermission.permission_id == Permission.id)
                .join(Group, Group.id == GroupPermission.group_id)
                .join(UserGroup, UserGroup.group_id == Group.id)
                .filter(UserGroup.user_id == user_id, Group.is_active.is_(True))
                .all()
            )
            unique = {p.id: p for p in rows}.values()
            return [
                PermissionGet.model_validate(p).model_dump(mode="json")
                for p in sorted(unique, key=lambda p: (p.category, p.name))
            ]

        try:
            if force_refresh:
                await cache.delete(key)
            return await cache.get_or_set(key, fetch, "long")
        except Exception as e:
            logger.error(f"Error resolving permission details for user {user_id}: {e}")
            return []

    def is_superuser(self, user_id: str) -> bool:
        return db_user_in_groups(user_id, [SUPERUSER_GROUP], self.db)

    def is_admin(self, user_id: str) -> bool:
        return db_user_in_groups(user_id, list(ADMIN_GROUPS), self.db)

    async def build_principal(self, user_id: str, email: Optional[str] = None, force_refresh: bool = False) -> Principal:
        groups = await self.get_user_groups(user_id, force_refresh)
        permissions = await self.get_user_permissions(user_id, force_refresh)
        return Principal(
            user_id=user_id,
            email=email,
            groups=[g["codename"] for g in groups],
            permissions=permissions,
        )


def format_required(required: Sequence[str], require_all: bool) -> str:
    if len(required) == 1:
        return required[0]
    if require_all:
        return f"all of: {', '.join(required)}"
    return f"one of: {' or '.join(required)}"


def access_denied(required: Sequence[str], require_all: bool = False) -> ForbiddenException:
    return ForbiddenException(detail={
        "message": f"{ACCESS_DENIED_MESSAGE} Required permission: {format_required(required, require_all)}",
        "required_permissions": list(required),
    })


def check_permission(principal: Optional[Principal], required: str | Sequence[str], require_all: bool = False) -> Principal:
    """Raise 403 unless `principal` holds the required permission(s). Superusers always pass."""
    required = [required] if isinstance(required, str) else list(required)

    if principal is None or principal.user_id is None:
        raise ForbiddenException(detail={"message": "User not authenticated", "required_permissions": required})

    if principal.is_superuser:
        return principal

    if require_all:
        missing = principal.missing(required)
        if missing:
            raise access_denied([missing[0]])
        return principal

    if not principal.permitted(required):
        raise access_denied(required, require_all=False)

    return principal
