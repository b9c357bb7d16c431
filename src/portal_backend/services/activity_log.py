import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import Request
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.interface.activity import ActivityLogGet, ActivityLogQuery
from portal_backend.model.activity import ActivityLog
from portal_backend.utils import utc_now

logger = logging.getLogger(__name__)


def request_context(request: Optional[Request]) -> dict:
    if request is None:
        return {}
    forwarded = request.headers.get("X-Forwarded-For")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return {
        "ip_address": ip_address,
        "user_agent": request.headers.get("User-Agent"),
        "endpoint": request.url.path,
        "method": request.method,
        "request_id": request.headers.get("X-Request-ID"),
    }


class ActivityLogService:

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        message: str,
        level: str = "INFO",
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        module: Optional[str] = None,
        request: Optional[Request] = None,
        status_code: Optional[int] = None,
        metadata: Optional[dict] = None,
        error_details: Optional[dict] = None,
    ) -> Optional[ActivityLog]:
        """Persist an entry. Failures are logged and never reach the caller."""
        try:
            entry = ActivityLog(
                message=message,
                level=level.upper(),
                user_id=user_id,
                action=action,
                module=module,
                status_code=status_code,
                meta=metadata,
                error_details=error_details,
                **request_context(request),
            )
            self.db.add(entry)
            self.db.commit()
            return entry
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to write activity log entry '{action}': {e}")
            return None

    def _filtered(self, params: ActivityLogQuery):
        query = self.db.query(ActivityLog)
        if params.user_id:
            query = query.filter(ActivityLog.user_id == params.user_id)
        if params.level:
            query = query.filter(ActivityLog.level == params.level)
        if params.action:
            query = query.filter(ActivityLog.action == params.action)
        if params.module:
            query = query.filter(ActivityLog.module == params.module)
        if params.search:
            term = f"%{params.search.strip()}%"
            query = query.filter(or_(ActivityLog.message.ilike(term), ActivityLog.action.ilike(term)))
        return query

    def list(self, params: ActivityLogQuery) -> Tuple[list, int]:
        query = self._filtered(params)
        total = query.order_by(None).count()
        rows = (
            query.order_by(ActivityLog.created_at.desc())
            .limit(params.limit)
            .offset(params.offset)
            .all()
        )
        return [ActivityLogGet.model_validate(r).model_dump(mode="json") for r in rows], total

    def statistics(self, user_id: Optional[str] = None, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        def grouped(column):
            query = self.db.query(column, func.count(ActivityLog.id))
            if user_id:
                query = query.filter(ActivityLog.user_id == user_id)
            if start:
                query = query.filter(ActivityLog.created_at >= start)
            if end:
                query = query.filter(ActivityLog.created_at <= end)
            return {str(key): count for key, count in query.group_by(column).all() if key is not None}

        by_level = grouped(ActivityLog.level)
        return {
            "total": sum(by_level.values()),
            "by_level": by_level,
            "by_module": grouped(ActivityLog.module),
            "by_action": grouped(ActivityLog.action),
        }

    def cleanup(self, older_than_days: int) -> int:
        cutoff = utc_now() - timedelta(days=older_than_days)
        try:
            deleted = (
                self.db.query(ActivityLog)
                .filter(ActivityLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(f"Removed {deleted} activity log entries older than {older_than_days} days")
        return deleted
