"""
Cache key builders.

Keys follow `resource:identifier:params`. List keys are derived from the
filter set: empty filters are omitted, booleans become `true`/`false`,
search terms are lower-cased and trimmed, and segments always appear in the
same order, so equal filters produce equal keys.
"""

from typing import Any, Iterable, Optional, Tuple


def _normalize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):
        value = value.value
    value = str(value).strip()
    return value if value != "" else None


def _segments(pairs: Iterable[Tuple[str, Any]]) -> str:
    parts = []
    for name, value in pairs:
        normalized = _normalize(value)
        if normalized is not None:
            parts.append(f"{name}:{normalized}")
    return ":".join(parts)


def _join(*parts: str) -> str:
    return ":".join(p for p in parts if p)


# users

def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def users_list_key(
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    auth_type: Optional[str] = None,
    status: Optional[str] = None,
    gender: Optional[str] = None,
    is_active: Optional[bool] = None,
    is_verified: Optional[bool] = None,
) -> str:
    return _join(
        f"users:list:page:{page}:limit:{limit}",
        _segments([
            ("search", search.strip().lower() if search else None),
            ("auth_type", auth_type),
            ("status", status),
            ("gender", gender),
            ("is_active", is_active),
            ("is_verified", is_verified),
        ]),
    )


def users_list_pattern() -> str:
    return "users:list:*"


def user_permissions_key(user_id: str) -> str:
    return f"user:{user_id}:permissions"


def user_groups_key(user_id: str) -> str:
    return f"user:{user_id}:groups"


def user_permission_details_key(user_id: str) -> str:
    return f"user:{user_id}:permissions:details"


def user_permissions_response_key(user_id: str) -> str:
    return f"user:{user_id}:permissions:response"


def user_permissions_pattern() -> str:
    return "user:*:permissions*"


def user_groups_pattern() -> str:
    return "user:*:groups"


def profile_key(user_id: str) -> str:
    return f"profile:{user_id}"


# groups and permissions

def groups_all_key() -> str:
    return "groups:all"


def group_key(group_id: str) -> str:
    return f"group:{group_id}"


def group_permissions_key(group_id: str) -> str:
    return f"group:{group_id}:permissions"


def groups_statistics_key() -> str:
    return "groups:statistics"


def permissions_all_key() -> str:
    return "permissions:all"


def permission_key(permission_id: str) -> str:
    return f"permission:{permission_id}"


def permissions_statistics_key() -> str:
    return "permissions:statistics"


# notifications

def notifications_list_key(
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    notification_type: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> str:
    return (
        f"notifications:user:{user_id or 'all'}"
        f":status:{_normalize(status) or 'all'}"
        f":type:{_normalize(notification_type) or 'all'}"
        f":priority:{_normalize(priority) or 'all'}"
        f":limit:{limit}:offset:{offset}"
    )


def notifications_unread_count_key(user_id: Optional[str] = None) -> str:
    return f"notifications:unread-count:{user_id or 'all'}"


def notification_key(notification_id: str) -> str:
    return f"notification:{notification_id}"


def notifications_pattern() -> str:
    return "notifications:*"


# activity logs

def activity_logs_key(
    user_id: Optional[str] = None,
    level: Optional[str] = None,
    action: Optional[str] = None,
    module: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> str:
    return _join(
        "activity:logs",
        _segments([
            ("user", user_id),
            ("level", level),
            ("action", action),
            ("module", module),
            ("search", search.strip().lower() if search else None),
        ]),
        f"limit:{limit}:offset:{offset}",
    )


def activity_statistics_key(user_id: Optional[str] = None, start: Optional[Any] = None, end: Optional[Any] = None) -> str:
    return _join(
        "activity:statistics",
        _segments([("user", user_id), ("start", start), ("end", end)]),
    )


def activity_pattern() -> str:
    return "activity:*"


# dashboard and system

def dashboard_key(kind: str) -> str:
    return f"dashboard:{kind}"


def dashboard_pattern() -> str:
    return "dashboard:*"


# media and account sharing

def media_list_key(
    user_id: str,
    folder: Optional[str] = None,
    mime_type: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> str:
    return _join(
        f"media:list:user:{user_id}",
        _segments([
            ("folder", folder),
            ("mime_type", mime_type),
            ("search", search.strip().lower() if search else None),
        ]),
        f"limit:{limit}:offset:{offset}",
    )


def media_user_pattern(user_id: str) -> str:
    return f"media:*:user:{user_id}*"


def media_folders_key(user_id: str) -> str:
    return f"media:folders:user:{user_id}"


def media_statistics_key(user_id: str) -> str:
    return f"media:statistics:user:{user_id}"


def account_shares_key(kind: str, user_id: str) -> str:
    return f"account-shares:{kind}:{user_id}"


def account_shares_user_pattern(user_id: str) -> str:
    return f"account-shares:*:{user_id}"


def revoked_token_key(jti: str) -> str:
    return f"auth:revoked:{jti}"
