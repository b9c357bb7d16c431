from .base import Base, metadata
from .auth import User
from .group import Permission, Group, GroupPermission, UserGroup
from .notification import Notification
from .activity import ActivityLog
from .media import Media, MediaFolder
from .account_share import AccountShare, AccountShareInvitation, AccountShareActivity

__all__ = [
    'Base',
    'metadata',
    'User',
    # Permission models
    'Permission',
    'Group',
    'GroupPermission',
    'UserGroup',
    'Notification',
    'ActivityLog',
    'Media',
    'MediaFolder',
    # Account sharing
    'AccountShare',
    'AccountShareInvitation',
    'AccountShareActivity',
]
