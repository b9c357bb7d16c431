"""
Cache invalidation helpers.

Every helper is a no-op when caching is disabled and never raises: an
invalidation failure is logged and the mutation that triggered it stands.
"""

import logging
from typing import Iterable, Optional

from portal_backend.cache import get_cache
from portal_backend.cache import keys

logger = logging.getLogger(__name__)


async def _invalidate(keys_to_delete: Iterable[str] = (), patterns: Iterable[str] = ()):
    cache = get_cache()
    if not cache.enabled:
        return
    for key in keys_to_delete:
        try:
            await cache.delete(key)
            logger.debug(f"Invalidated cache key {key}")
        except Exception as e:
            logger.error(f"Failed to invalidate cache key {key}: {e}")
    for pattern in patterns:
        try:
            deleted = await cache.delete_by_pattern(pattern)
            logger.debug(f"Invalidated {deleted} cache keys matching {pattern}")
        except Exception as e:
            logger.error(f"Failed to invalidate cache pattern {pattern}: {e}")


async def invalidate_user_cache(user_id: str):
    await _invalidate([keys.user_key(user_id), keys.profile_key(user_id)])


async def invalidate_users_list_cache():
    await _invalidate(patterns=[keys.users_list_pattern()])


async def invalidate_user_permissions_cache(user_id: Optional[str] = None):
    if user_id:
        await _invalidate([
            keys.user_permissions_key(user_id),
            keys.user_permission_details_key(user_id),
            keys.user_permissions_response_key(user_id),
            keys.user_groups_key(user_id),
        ])
    else:
        await _invalidate(patterns=[keys.user_permissions_pattern(), keys.user_groups_pattern()])


async def invalidate_users_permissions_cache(user_ids: Iterable[str]):
    for user_id in user_ids:
        await invalidate_user_permissions_cache(user_id)


async def invalidate_dashboard_cache():
    await _invalidate(patterns=[keys.dashboard_pattern()])


async def invalidate_all_user_related_cache(user_id: str):
    await invalidate_user_cache(user_id)
    await invalidate_user_permissions_cache(user_id)
    await invalidate_users_list_cache()
    await invalidate_dashboard_cache()
    # group member counts
    await invalidate_groups_cache()


async def invalidate_groups_cache(group_id: Optional[str] = None):
    to_delete = [keys.groups_all_key(), keys.groups_statistics_key()]
    if group_id:
        to_delete += [keys.group_key(group_id), keys.group_permissions_key(group_id)]
        await _invalidate(to_delete)
    else:
        await _invalidate(to_delete, patterns=["group:*"])


async def invalidate_permissions_cache(permission_id: Optional[str] = None):
    to_delete = [keys.permissions_all_key(), keys.permissions_statistics_key()]
    if permission_id:
        to_delete.append(keys.permission_key(permission_id))
        await _invalidate(to_delete)
    else:
        await _invalidate(to_delete, patterns=["permission:*"])


async def invalidate_notifications_cache(notification_id: Optional[str] = None):
    await _invalidate(
        ([keys.notification_key(notification_id)] if notification_id else []) + [keys.dashboard_key("notifications-stats")],
        patterns=[keys.notifications_pattern()],
    )


async def invalidate_activity_logs_cache():
    await _invalidate(patterns=[keys.activity_pattern()])


async def invalidate_media_cache(user_id: str):
    await _invalidate(patterns=[keys.media_user_pattern(user_id)])


async def invalidate_account_share_cache(*user_ids: Optional[str]):
    await _invalidate(patterns=[keys.account_shares_user_pattern(u) for u in user_ids if u])

