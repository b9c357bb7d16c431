from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID


class Permission(Base):
    __tablename__ = 'permission'

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    name = Column(String(255), unique=True, nullable=False)
    codename = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text)
    category = Column(String(64), nullable=False, default="general", index=True)

    group_permissions = relationship("GroupPermission", back_populates="permission", cascade="all, delete-orphan")


class Group(Base):
    __tablename__ = 'group'

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    name = Column(String(255), unique=True, nullable=False)
    codename = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text)
    is_system = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    group_permissions = relationship("GroupPermission", back_populates="group", cascade="all, delete-orphan")
    user_groups = relationship("UserGroup", back_populates="group", cascade="all, delete-orphan")


class GroupPermission(Base):
    __tablename__ = 'group_permission'
    __table_args__ = (
        UniqueConstraint('group_id', 'permission_id', name='group_permission_group_id_permission_id_key'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    group_id = Column(ForeignKey('group.id', ondelete='CASCADE'), nullable=False, index=True)
    permission_id = Column(ForeignKey('permission.id', ondelete='CASCADE'), nullable=False, index=True)

    group = relationship("Group", back_populates="group_permissions")
    permission = relationship("Permission", back_populates="group_permissions")


class UserGroup(Base):
    __tablename__ = 'user_group'
    __table_args__ = (
        UniqueConstraint('user_id', 'group_id', name='user_group_user_id_group_id_key'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    group_id = Column(ForeignKey('group.id', ondelete='CASCADE'), nullable=False, index=True)
    assigned_at = Column(DateTime(True), nullable=False, default=utc_now)
    assigned_by_user_id = Column(ForeignKey('user.id', ondelete='SET NULL'))

    user = relationship("User", foreign_keys=[user_id], back_populates="user_groups")
    group = relationship("Group", back_populates="user_groups")
