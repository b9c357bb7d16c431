import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import BadRequestException, NotFoundException
from portal_backend.cache.invalidation import (
    invalidate_dashboard_cache,
    invalidate_groups_cache,
    invalidate_permissions_cache,
    invalidate_user_permissions_cache,
    invalidate_users_permissions_cache,
)
from portal_backend.model.auth import User
from portal_backend.model.group import Group, GroupPermission, Permission, UserGroup
from portal_backend.model.seeder import ensure_default_group

logger = logging.getLogger(__name__)


def group_member_ids(db: Session, group_id: str) -> List[str]:
    return [user_id for (user_id,) in db.query(UserGroup.user_id).filter(UserGroup.group_id == group_id).all()]


async def assign_groups_to_user(db: Session, user_id: str, codenames: Sequence[str], assigned_by: Optional[str] = None) -> List[Group]:
    """
    Replace the user's group memberships with the active groups named by
    `codenames`. Missing default system groups are created on the fly,
    any other unknown codename is rejected before anything changes.
    """
    if db.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFoundException(detail=f"User with id [{user_id}] not found")

    codenames = list(dict.fromkeys(codenames))

    try:
        groups = db.query(Group).filter(Group.codename.in_(codenames), Group.is_active.is_(True)).all()
        found = {g.codename for g in groups}

        missing = []
        for codename in codenames:
            if codename in found:
                continue
            group = ensure_default_group(db, codename)
            if group is None or not group.is_active:
                missing.append(codename)
            else:
                groups.append(group)

        if missing:
            db.rollback()
            raise BadRequestException(detail=f"Groups not found: {', '.join(missing)}")

        db.query(UserGroup).filter(UserGroup.user_id == user_id).delete(synchronize_session=False)
        for group in groups:
            db.add(UserGroup(user_id=user_id, group_id=group.id, assigned_by_user_id=assigned_by))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(f"Assigned groups {sorted(g.codename for g in groups)} to user {user_id}")

    await invalidate_user_permissions_cache(user_id)
    await invalidate_groups_cache()
    await invalidate_dashboard_cache()

    return sorted(groups, key=lambda g: g.name)


async def assign_permissions_to_group(db: Session, group_id: str, permission_ids: Sequence[str]) -> Group:
    """Replace the group's permission set."""
    group = db.query(Group).filter(Group.id == group_id).first()
    if group is None:
        raise NotFoundException(detail=f"Group with id [{group_id}] not found")

    permission_ids = list(dict.fromkeys(permission_ids))
    found = {p.id for p in db.query(Permission).filter(Permission.id.in_(permission_ids)).all()} if permission_ids else set()
    unknown = [pid for pid in permission_ids if pid not in found]
    if unknown:
        db.rollback()
        raise BadRequestException(detail=f"Permissions not found: {', '.join(unknown)}")

    try:
        db.query(GroupPermission).filter(GroupPermission.group_id == group_id).delete(synchronize_session=False)
        for permission_id in permission_ids:
            db.add(GroupPermission(group_id=group_id, permission_id=permission_id))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(group)
    logger.info(f"Assigned {len(permission_ids)} permissions to group {group.codename}")

    await invalidate_users_permissions_cache(group_member_ids(db, group_id))
    await invalidate_groups_cache(group_id)
    return group


async def delete_group(db: Session, group_id: str):
    group = db.query(Group).filter(Group.id == group_id).first()
    if group is None:
        raise NotFoundException(detail=f"Group with id [{group_id}] not found")
    if group.is_system:
        raise BadRequestException(detail="System groups cannot be deleted")

    members = group_member_ids(db, group_id)
    codename = group.codename
    try:
        db.delete(group)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(f"Deleted group {codename}")
    await invalidate_users_permissions_cache(members)
    await invalidate_groups_cache(group_id)
    await invalidate_dashboard_cache()


async def after_group_update(db: Session, group: Group, membership_affected: bool):
    """Invalidate caches after a group edit. Codename or `is_active` changes affect members."""
    if membership_affected:
        await invalidate_users_permissions_cache(group_member_ids(db, group.id))
    await invalidate_groups_cache(group.id)


async def after_permission_change(permission_id: Optional[str] = None):
    """A renamed or deleted permission may appear in any user's resolved set."""
    await invalidate_user_permissions_cache()
    await invalidate_permissions_cache(permission_id)
    await invalidate_groups_cache()
