from datetime import datetime, timedelta, timezone
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from portal_backend.model.activity import ActivityLog
from portal_backend.model.auth import User
from portal_backend.model.group import Group, Permission, UserGroup
from portal_backend.model.notification import Notification
from portal_backend.utils import as_utc, utc_now


class DashboardService:

    def __init__(self, db: Session):
        self.db = db

    def _users(self):
        return self.db.query(User).filter(User.is_trashed.is_(False))

    def overview(self) -> dict:
        since = utc_now() - timedelta(days=30)
        users = self._users()
        return {
            "total_users": users.count(),
            "active_users": users.filter(User.status == "ACTIVE").count(),
            "suspended_users": users.filter(User.status == "SUSPENDED").count(),
            "verified_users": users.filter(User.is_verified.is_(True)).count(),
            "new_users_last_30_days": users.filter(User.created_at >= since).count(),
            "total_groups": self.db.query(func.count(Group.id)).scalar() or 0,
            "total_permissions": self.db.query(func.count(Permission.id)).scalar() or 0,
        }

    def users_by(self, column) -> Dict[str, int]:
        rows = (
            self.db.query(column, func.count(User.id))
            .filter(User.is_trashed.is_(False))
            .group_by(column)
            .all()
        )
        return {str(key) if key is not None else "unknown": count for key, count in rows}

    def users_by_status(self) -> Dict[str, int]:
        return self.users_by(User.status)

    def users_by_auth_type(self) -> Dict[str, int]:
        return self.users_by(User.auth_type)

    def user_growth(self, days: int = 30) -> List[dict]:
        """New users per day for the last `days` days, oldest first, zero filled."""
        today = utc_now().date()
        start = today - timedelta(days=days - 1)
        counts = {start + timedelta(days=i): 0 for i in range(days)}

        created = (
            self._users()
            .with_entities(User.created_at)
            .filter(User.created_at >= utc_now() - timedelta(days=days))
            .all()
        )
        for (created_at,) in created:
            day = as_utc(created_at).date()
            if day in counts:
                counts[day] += 1

        return [{"date": day.isoformat(), "count": count} for day, count in counts.items()]

    def users_per_group(self) -> List[dict]:
        rows = (
            self.db.query(Group.codename, Group.name, func.count(UserGroup.id))
            .outerjoin(UserGroup, UserGroup.group_id == Group.id)
            .group_by(Group.id, Group.codename, Group.name)
            .order_by(Group.name)
            .all()
        )
        return [{"codename": codename, "name": name, "users": count} for codename, name, count in rows]

    def users_by_country(self, limit: int = 20) -> Dict[str, int]:
        counts = self.users_by(User.country)
        top = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return dict(top)

    def users_by_language(self) -> Dict[str, int]:
        return self.users_by(User.language)

    def recent_sign_ins(self, limit: int = 10) -> List[dict]:
        users = (
            self._users()
            .filter(User.last_sign_in_at.isnot(None))
            .order_by(User.last_sign_in_at.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "last_sign_in_at": as_utc(user.last_sign_in_at).isoformat(),
            }
            for user in users
        ]

    def role_statistics(self) -> Dict[str, int]:
        """Member count per active group, keyed by group name."""
        rows = (
            self.db.query(Group.name, func.count(UserGroup.id))
            .outerjoin(UserGroup, UserGroup.group_id == Group.id)
            .filter(Group.is_active.is_(True))
            .group_by(Group.id, Group.name)
            .all()
        )
        return {name: count for name, count in rows}

    @staticmethod
    def _windows() -> Dict[str, datetime]:
        now = utc_now()
        return {
            "today": datetime(now.year, now.month, now.day, tzinfo=timezone.utc),
            "this_week": now - timedelta(days=7),
            "this_month": now - timedelta(days=30),
        }

    def _since_counts(self, query, column) -> Dict[str, int]:
        return {name: query.filter(column >= since).count() for name, since in self._windows().items()}

    def _grouped(self, column, count_column) -> Dict[str, int]:
        rows = self.db.query(column, func.count(count_column)).group_by(column).all()
        return {str(key): count for key, count in rows if key is not None}

    def notification_statistics(self) -> dict:
        notifications = self.db.query(Notification)
        total = notifications.count()
        unread = notifications.filter(Notification.read_at.is_(None)).count()
        return {
            "total": total,
            "unread": unread,
            "read": total - unread,
            "by_type": self._grouped(Notification.notification_type, Notification.id),
            "by_priority": self._grouped(Notification.priority, Notification.id),
            **self._since_counts(notifications, Notification.created_at),
        }

    def activity_statistics(self) -> dict:
        logs = self.db.query(ActivityLog)
        by_level = self._grouped(ActivityLog.level, ActivityLog.id)
        by_action = self._grouped(ActivityLog.action, ActivityLog.id)
        return {
            "total": sum(by_level.values()),
            "by_level": by_level,
            "by_module": self._grouped(ActivityLog.module, ActivityLog.id),
            "by_action": dict(sorted(by_action.items(), key=lambda item: (-item[1], item[0]))[:10]),
            "errors": logs.filter(ActivityLog.level.in_(["ERROR", "CRITICAL"])).count(),
            **self._since_counts(logs, ActivityLog.created_at),
        }
