import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import ForbiddenException, NotFoundException
from portal_backend.cache.invalidation import invalidate_notifications_cache
from portal_backend.interface.notifications import (
    NotificationCreate,
    NotificationGet,
    NotificationQuery,
    NotificationUpdate,
)
from portal_backend.model.auth import User
from portal_backend.model.notification import Notification
from portal_backend.permissions.principal import Principal
from portal_backend.utils import utc_now

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, user_id: Optional[str]):
        query = self.db.query(Notification)
        if user_id is not None:
            query = query.filter(Notification.user_id == user_id)
        return query

    def list(self, user_id: Optional[str], params: NotificationQuery) -> Tuple[List[dict], int, int]:
        """Notifications for `user_id`, or for everyone when `user_id` is None."""
        query = self._scoped(user_id)
        if params.status == "read":
            query = query.filter(Notification.read_at.is_not(None))
        elif params.status == "unread":
            query = query.filter(Notification.read_at.is_(None))
        if params.notification_type:
            query = query.filter(Notification.notification_type == params.notification_type)
        if params.priority:
            query = query.filter(Notification.priority == params.priority)

        total = query.order_by(None).count()
        rows = (
            query.order_by(Notification.created_at.desc())
            .limit(params.limit)
            .offset(params.offset)
            .all()
        )
        items = [NotificationGet.model_validate(r).model_dump(mode="json") for r in rows]
        return items, total, self.unread_count(user_id)

    def unread_count(self, user_id: Optional[str]) -> int:
        return self._scoped(user_id).filter(Notification.read_at.is_(None)).count()

    def get_for(self, notification_id: str, principal: Principal) -> Notification:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFoundException(detail=f"Notification with id [{notification_id}] not found")
        if notification.user_id != principal.user_id and not principal.is_admin:
            raise NotFoundException(detail=f"Notification with id [{notification_id}] not found")
        return notification

    async def create(self, payload: NotificationCreate, principal: Principal) -> Notification:
        recipient_id = payload.user_id or principal.user_id
        if recipient_id != principal.user_id and not principal.is_admin:
            raise ForbiddenException(detail="Only administrators can notify other users")
        if self.db.query(User.id).filter(User.id == recipient_id).first() is None:
            raise NotFoundException(detail=f"User with id [{recipient_id}] not found")

        data = payload.model_dump(exclude={"user_id", "metadata"})
        notification = Notification(**data, user_id=recipient_id, created_by=principal.user_id, meta=payload.metadata)
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(notification)
        await invalidate_notifications_cache()
        return notification

    async def update(self, notification_id: str, payload: NotificationUpdate, principal: Principal) -> Notification:
        notification = self.get_for(notification_id, principal)
        changes = payload.model_dump(exclude_unset=True)

        is_read = changes.pop("is_read", None)
        if is_read is not None:
            notification.read_at = (notification.read_at or utc_now()) if is_read else None
        for key, value in changes.items():
            setattr(notification, key, value)

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(notification)
        await invalidate_notifications_cache(notification_id)
        return notification

    async def delete(self, notification_id: str, principal: Principal):
        notification = self.get_for(notification_id, principal)
        try:
            self.db.delete(notification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        await invalidate_notifications_cache(notification_id)

    async def mark_read(self, user_id: str, notification_ids: Optional[List[str]] = None) -> int:
        query = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
        if notification_ids:
            query = query.filter(Notification.id.in_(notification_ids))
        try:
            updated = query.update({Notification.read_at: utc_now()}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        await invalidate_notifications_cache()
        return updated

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = "info",
        priority: str = "normal",
        link: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[Notification]:
        """System notification. A failure is logged and does not affect the caller."""
        try:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
                priority=priority,
                link=link,
                meta=metadata,
            )
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to create notification for user {user_id}: {e}")
            return None
        await invalidate_notifications_cache()
        return notification
