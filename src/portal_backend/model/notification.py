from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID, JSONType


class Notification(Base):
    __tablename__ = 'notification'
    __table_args__ = (
        Index('notification_user_read_idx', 'user_id', 'read_at'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    created_by = Column(ForeignKey('user.id', ondelete='SET NULL'))
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String(32), nullable=False, default="info")
    priority = Column(String(16), nullable=False, default="normal")
    link = Column(String(1024))
    read_at = Column(DateTime(True))
    meta = Column("metadata", JSONType)

    user = relationship("User", foreign_keys=[user_id], back_populates="notifications")
