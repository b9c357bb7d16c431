import logging
import random
from typing import Dict, List, Optional, Tuple

from faker import Faker
from sqlalchemy import func
from sqlalchemy.orm import Session

from portal_backend.model.auth import User
from portal_backend.model.group import Group, GroupPermission, Permission, UserGroup

logger = logging.getLogger(__name__)

# (codename, name, category, description)
DEFAULT_PERMISSIONS = [
    ("view_auth", "View Auth Info", "auth", "Can view authentication information (token info, session)"),
    ("manage_auth", "Manage Auth", "auth", "Can manage authentication (change password, verify, etc.)"),
    ("view_dashboard", "View Dashboard", "dashboard", "Can view dashboard and overview statistics"),
    ("view_dashboard_statistics", "View Dashboard Statistics", "dashboard", "Can view detailed dashboard statistics (user growth, role stats, etc.)"),
    ("manage_dashboard", "Manage Dashboard", "dashboard", "Can manage dashboard settings and view all statistics"),
    ("view_user", "View User", "user", "Can view individual user profiles and information"),
    ("view_users", "View Users", "user", "Can view list of all users"),
    ("add_user", "Add User", "user", "Can create new users"),
    ("edit_user", "Edit User", "user", "Can edit user profiles and information"),
    ("delete_user", "Delete User", "user", "Can delete users"),
    ("suspend_user", "Suspend User", "user", "Can suspend/block users"),
    ("activate_user", "Activate User", "user", "Can activate suspended users"),
    ("reset_user_password", "Reset User Password", "user", "Can reset password for users"),
    ("force_logout", "Force Logout User", "user", "Can force user to logout"),
    ("manage_users", "Manage Users", "user", "Can fully manage users (create, edit, delete, suspend, activate)"),
    ("view_user_groups", "View User Groups", "user", "Can view groups assigned to users"),
    ("assign_user_groups", "Assign User Groups", "user", "Can assign groups to users"),
    ("view_user_permissions", "View User Permissions", "user", "Can view permissions assigned to users"),
    ("view_profile", "View Profile", "profile", "Can view own profile"),
    ("edit_profile", "Edit Profile", "profile", "Can edit own profile information"),
    ("update_profile_picture", "Update Profile Picture", "profile", "Can update own profile picture"),
    ("change_email", "Change Email", "profile", "Can change own email address"),
    ("change_phone", "Change Phone", "profile", "Can change own phone number"),
    ("update_theme", "Update Theme", "profile", "Can update own theme preferences"),
    ("update_language", "Update Language", "profile", "Can update own language preferences"),
    ("update_timezone", "Update Timezone", "profile", "Can update own timezone preferences"),
    ("update_profile_accessibility", "Update Profile Accessibility", "profile", "Can update own profile accessibility settings"),
    ("deactivate_account", "Deactivate Account", "profile", "Can deactivate own account"),
    ("delete_account", "Delete Account", "profile", "Can delete own account"),
    ("manage_profile", "Manage Profile", "profile", "Can fully manage own profile and settings"),
    ("view_group", "View Groups", "group", "Can view groups"),
    ("view_group_statistics", "View Group Statistics", "group", "Can view group statistics and analytics"),
    ("add_group", "Add Group", "group", "Can create new groups"),
    ("edit_group", "Edit Group", "group", "Can edit group information"),
    ("delete_group", "Delete Group", "group", "Can delete groups"),
    ("view_group_permissions", "View Group Permissions", "group", "Can view permissions assigned to groups"),
    ("assign_group_permissions", "Assign Group Permissions", "group", "Can assign permissions to groups"),
    ("manage_groups", "Manage Groups", "group", "Can fully manage groups (create, edit, delete, assign permissions)"),
    ("view_permission", "View Permissions", "permission", "Can view permissions"),
    ("view_permission_statistics", "View Permission Statistics", "permission", "Can view permission statistics and analytics"),
    ("add_permission", "Add Permission", "permission", "Can create new permissions"),
    ("edit_permission", "Edit Permission", "permission", "Can edit permissions"),
    ("delete_permission", "Delete Permission", "permission", "Can delete permissions"),
    ("manage_permissions", "Manage Permissions", "permission", "Can fully manage permissions (create, edit, delete)"),
    ("view_notification", "View Notifications", "notification", "Can view notifications"),
    ("view_notification_count", "View Notification Count", "notification", "Can view unread notification count"),
    ("add_notification", "Add Notification", "notification", "Can create new notifications"),
    ("edit_notification", "Edit Notification", "notification", "Can edit notifications"),
    ("delete_notification", "Delete Notification", "notification", "Can delete notifications"),
    ("mark_notification_read", "Mark Notification Read", "notification", "Can mark notifications as read"),
    ("manage_notifications", "Manage Notifications", "notification", "Can fully manage notifications (create, edit, delete, mark read)"),
    ("view_activity_log", "View Activity Logs", "activity", "Can view activity logs"),
    ("view_own_activity_log", "View Own Activity Logs", "activity", "Can view own activity logs"),
    ("view_user_activity_log", "View User Activity Logs", "activity", "Can view activity logs for specific users"),
    ("view_activity_statistics", "View Activity Statistics", "activity", "Can view activity log statistics and analytics"),
    ("delete_activity_log", "Delete Activity Logs", "activity", "Can delete activity logs"),
    ("cleanup_activity_log", "Cleanup Activity Logs", "activity", "Can cleanup old activity logs"),
    ("manage_activity_log", "Manage Activity Logs", "activity", "Can fully manage activity logs (view, delete, cleanup)"),
    ("manage_activity_logs", "Manage Activity Logs (Plural)", "activity", "Can fully manage activity logs - alternative permission name used in API routes"),
    ("view_project_settings", "View Project Settings", "project", "Can view project information and settings"),
    ("edit_project_settings", "Edit Project Settings", "project", "Can edit project information and settings"),
    ("manage_project_settings", "Manage Project Settings", "project", "Can fully manage project settings including logos and meta data"),
    ("view_system_analytics", "View System Analytics", "system_analytics", "Can view system analytics and monitoring"),
    ("view_system_info", "View System Info", "system_analytics", "Can view system information (CPU, memory, disk, etc.)"),
    ("view_system_errors", "View System Errors", "system_analytics", "Can view system errors and logs"),
    ("view_system_logs", "View System Logs", "system_analytics", "Can view system log files and statistics"),
    ("view_docker_status", "View Docker Status", "system_analytics", "Can view Docker container status"),
    ("view_system_processes", "View System Processes", "system_analytics", "Can view system processes and top processes"),
    ("view_cache_statistics", "View Cache Statistics", "system_analytics", "Can view cache (Redis) statistics and keys"),
    ("manage_cache", "Manage Cache", "system_analytics", "Can manage cache (view, delete keys)"),
    ("manage_system_logs", "Manage System Logs", "system_analytics", "Can manage system logs (view, clear, delete)"),
    ("manage_system_analytics", "Manage System Analytics", "system_analytics", "Can fully manage system analytics and monitoring"),
    ("view_media", "View Media", "media", "Can view media files"),
    ("add_upload", "Add Upload", "media", "Can upload media files"),
    ("delete_upload", "Delete Upload", "media", "Can delete media files"),
    ("manage_media", "Manage Media", "media", "Can fully manage media files (upload, delete)"),
    ("view_account_sharing", "View Account Sharing", "account_sharing", "Can view account sharing settings and invitations"),
    ("share_account", "Share Account Access", "account_sharing", "Can share own account access with other users"),
    ("request_account_access", "Request Account Access", "account_sharing", "Can request access to other users accounts"),
    ("accept_account_share", "Accept Account Share", "account_sharing", "Can accept account sharing invitations"),
    ("revoke_account_share", "Revoke Account Share", "account_sharing", "Can revoke shared account access"),
    ("view_share_activity", "View Account Share Activity", "account_sharing", "Can view account sharing activity logs"),
    ("manage_account_sharing", "Manage Account Sharing", "account_sharing", "Can fully manage account sharing (share, revoke, view activity)"),
    ("admin_manage_shares", "Admin Manage All Shares", "account_sharing", "Admin permission to view and manage all account shares"),
]

PROFILE_PERMISSIONS = [
    "view_profile", "edit_profile", "update_profile_picture",
    "change_email", "change_phone",
    "update_theme", "update_language", "update_timezone",
    "update_profile_accessibility", "deactivate_account",
    "delete_account", "manage_profile",
]

ACCOUNT_SHARING_PERMISSIONS = [
    "view_account_sharing", "share_account", "request_account_access",
    "accept_account_share", "revoke_account_share", "view_share_activity",
    "manage_account_sharing",
]

SUPER_ADMIN_GROUP = "super_admin"
ADMIN_GROUP = "admin"
AGENT_GROUP = "agent"
USER_GROUP = "user"

DEFAULT_USER_GROUP = USER_GROUP

DEFAULT_GROUPS: Dict[str, dict] = {
    SUPER_ADMIN_GROUP: {
        "name": "Super Admin",
        "description": "Full system access with all permissions",
        "permissions": [codename for codename, _, _, _ in DEFAULT_PERMISSIONS],
    },
    ADMIN_GROUP: {
        "name": "Sub Admin",
        "description": "Administrative access with most permissions (no user deletion, limited system access)",
        "permissions": [
            "view_auth",
            "view_dashboard", "view_dashboard_statistics", "manage_dashboard",
            *PROFILE_PERMISSIONS,
            # users, no deletion
            "view_user", "view_users", "add_user", "edit_user",
            "suspend_user", "activate_user", "reset_user_password",
            "view_user_groups", "assign_user_groups", "view_user_permissions",
            "view_permission", "view_permission_statistics",
            # groups, no deletion
            "view_group", "view_group_statistics", "add_group", "edit_group",
            "view_group_permissions", "assign_group_permissions",
            "view_notification", "view_notification_count", "add_notification",
            "edit_notification", "delete_notification", "mark_notification_read",
            "manage_notifications",
            "view_activity_log", "view_own_activity_log", "view_user_activity_log", "view_activity_statistics",
            "view_project_settings", "edit_project_settings",
            "view_system_analytics", "view_system_info", "view_system_errors",
            "view_system_logs", "view_docker_status", "view_system_processes",
            "view_cache_statistics",
            "view_media", "add_upload", "delete_upload", "manage_media",
            *ACCOUNT_SHARING_PERMISSIONS,
        ],
    },
    AGENT_GROUP: {
        "name": "Agent",
        "description": "Support agent with user creation, profile management, notification management, and own activity access",
        "permissions": [
            *PROFILE_PERMISSIONS,
            "view_dashboard",
            "view_own_activity_log",
            "view_notification", "view_notification_count", "add_notification",
            "edit_notification", "delete_notification", "mark_notification_read",
            "manage_notifications",
            *ACCOUNT_SHARING_PERMISSIONS,
        ],
    },
    USER_GROUP: {
        "name": "User",
        "description": "Standard user with basic permissions",
        "permissions": [
            *PROFILE_PERMISSIONS,
            "view_dashboard",
            "view_own_activity_log",
            "view_notification", "view_notification_count",
            "delete_notification", "mark_notification_read",
            "manage_notifications",
            "view_media", "add_upload",
            *ACCOUNT_SHARING_PERMISSIONS,
        ],
    },
}


def seed_permissions(db: Session) -> Dict[str, Permission]:
    existing = {p.codename: p for p in db.query(Permission).all()}
    created = 0

    for codename, name, category, description in DEFAULT_PERMISSIONS:
        if codename in existing:
            continue
        permission = Permission(codename=codename, name=name, category=category, description=description)
        db.add(permission)
        existing[codename] = permission
        created += 1

    db.commit()
    logger.info(f"Seeded permissions: {created} created, {len(DEFAULT_PERMISSIONS) - created} already present")
    return existing


def ensure_default_group(db: Session, codename: str) -> Optional[Group]:
    """Create one of the default system groups if it does not exist. Does not commit."""
    if codename not in DEFAULT_GROUPS:
        return None

    group = db.query(Group).filter(Group.codename == codename).first()
    if group is not None:
        return group

    definition = DEFAULT_GROUPS[codename]
    group = Group(
        codename=codename,
        name=definition["name"],
        description=definition["description"],
        is_system=True,
        is_active=True,
    )
    db.add(group)
    db.flush()
    logger.info(f"Created default group {codename}")
    return group


def seed_groups(db: Session, permissions: Dict[str, Permission]) -> Dict[str, Group]:
    groups = {}

    for codename, definition in DEFAULT_GROUPS.items():
        group = ensure_default_group(db, codename)
        groups[codename] = group

        assigned = {gp.permission_id for gp in group.group_permissions}
        for perm_codename in definition["permissions"]:
            permission = permissions.get(perm_codename)
            if permission is None:
                logger.warning(f"Permission {perm_codename} not found, skipping assignment")
                continue
            if permission.id in assigned:
                continue
            db.add(GroupPermission(group_id=group.id, permission_id=permission.id))
            assigned.add(permission.id)

        logger.info(f"Processed {len(definition['permissions'])} permissions for group {codename}")

    db.commit()
    return groups


def assign_default_group_to_users(db: Session, groups: Dict[str, Group]) -> int:
    default_group = groups.get(DEFAULT_USER_GROUP)
    if default_group is None:
        logger.warning(f"Default group {DEFAULT_USER_GROUP} not found, skipping user group assignment")
        return 0

    users_without_group = (
        db.query(User)
        .filter(User.is_active.is_(True))
        .filter(~User.user_groups.any())
        .all()
    )
    for user in users_without_group:
        db.add(UserGroup(user_id=user.id, group_id=default_group.id))

    db.commit()
    logger.info(f"Assigned default group to {len(users_without_group)} users")
    return len(users_without_group)


def seed_defaults(db: Session) -> dict:
    permissions = seed_permissions(db)
    groups = seed_groups(db, permissions)
    assigned = assign_default_group_to_users(db, groups)
    return {
        "permissions": len(permissions),
        "groups": len(groups),
        "users_assigned": assigned,
    }


def create_fake_users(db: Session, count: int, password_hash: Optional[str] = None, seed: Optional[int] = None) -> List[User]:
    """Development data: `count` random users in the default group."""
    fake = Faker()
    if seed is not None:
        Faker.seed(seed)
        random.seed(seed)

    group = ensure_default_group(db, DEFAULT_USER_GROUP)
    users = []
    for _ in range(count):
        user = User(
            name=fake.name(),
            email=fake.unique.email(),
            user_name=fake.unique.user_name(),
            password=password_hash,
            gender=random.choice(["male", "female", "other", None]),
            country=fake.country_code(),
            status=random.choice(["ACTIVE", "ACTIVE", "ACTIVE", "INACTIVE", "SUSPENDED"]),
            is_verified=random.random() > 0.3,
        )
        db.add(user)
        db.flush()
        db.add(UserGroup(user_id=user.id, group_id=group.id))
        users.append(user)

    db.commit()
    logger.info(f"Created {len(users)} fake users")
    return users


def ensure_superuser(db: Session, email: str, password_hash: str, name: str = "Administrator") -> Tuple[User, bool]:
    """Protected, active member of the super admin group. Returns the user and whether it was created."""
    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    created = user is None

    if created:
        user = User(
            name=name,
            email=email,
            user_name=email.split("@")[0],
            password=password_hash,
            status="ACTIVE",
            is_active=True,
            is_verified=True,
            is_protected=True,
        )
        db.add(user)
        db.flush()

    group = ensure_default_group(db, SUPER_ADMIN_GROUP)
    if not any(ug.group_id == group.id for ug in user.user_groups):
        db.add(UserGroup(user_id=user.id, group_id=group.id))

    db.commit()
    logger.info(f"Superuser {email} {'created' if created else 'verified'}")
    return user, created
