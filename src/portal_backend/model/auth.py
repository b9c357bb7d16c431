from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID


class User(Base):
    __tablename__ = 'user'

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    name = Column(String(255), nullable=False)
    email = Column(String(320), unique=True, nullable=False, index=True)
    user_name = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255))
    phone = Column(String(64))
    bio = Column(Text)
    image = Column(String(1024))
    auth_type = Column(String(32), nullable=False, default="EMAIL")
    status = Column(String(32), nullable=False, default="INACTIVE")
    gender = Column(String(32))
    country = Column(String(64))
    language = Column(String(16), default="en")
    timezone = Column(String(64), default="UTC")
    theme = Column(String(16), default="system")
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_protected = Column(Boolean, nullable=False, default=False)
    is_trashed = Column(Boolean, nullable=False, default=False)
    last_sign_in_at = Column(DateTime(True))

    user_groups = relationship(
        "UserGroup", foreign_keys="UserGroup.user_id", back_populates="user",
        cascade="all, delete-orphan", lazy="select"
    )
    notifications = relationship("Notification", foreign_keys="Notification.user_id", back_populates="user", cascade="all, delete-orphan", lazy="select")
    media = relationship("Media", back_populates="user", cascade="all, delete-orphan", lazy="select")
