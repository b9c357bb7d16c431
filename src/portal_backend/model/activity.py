from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID, JSONType


class ActivityLog(Base):
    __tablename__ = 'activity_log'
    __table_args__ = (
        Index('activity_log_user_created_idx', 'user_id', 'created_at'),
        Index('activity_log_module_action_idx', 'module', 'action'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now, index=True)
    user_id = Column(ForeignKey('user.id', ondelete='SET NULL'), index=True)
    level = Column(String(16), nullable=False, default="INFO")
    message = Column(Text, nullable=False)
    action = Column(String(128))
    module = Column(String(128))
    ip_address = Column(String(64))
    user_agent = Column(String(1024))
    endpoint = Column(String(1024))
    method = Column(String(16))
    status_code = Column(Integer)
    request_id = Column(String(64))
    duration_ms = Column(Integer)
    meta = Column("metadata", JSONType)
    error_details = Column(JSONType)
