from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID, JSONType


class AccountShare(Base):
    __tablename__ = 'account_share'
    __table_args__ = (
        UniqueConstraint('owner_id', 'recipient_id', name='account_share_owner_id_recipient_id_key'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    owner_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    recipient_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    access_level = Column(String(32), nullable=False, default="view_only")
    custom_permissions = Column(JSONType)
    status = Column(String(32), nullable=False, default="active")
    expires_at = Column(DateTime(True))
    last_accessed = Column(DateTime(True))
    revoked_at = Column(DateTime(True))
    note = Column(Text)

    owner = relationship("User", foreign_keys=[owner_id])
    recipient = relationship("User", foreign_keys=[recipient_id])


class AccountShareInvitation(Base):
    __tablename__ = 'account_share_invitation'
    __table_args__ = (
        Index('account_share_invitation_recipient_email_idx', 'recipient_email'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    invitation_type = Column(String(16), nullable=False, default="share")
    sender_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    # share: the recipient being granted access. request: left empty.
    recipient_id = Column(ForeignKey('user.id', ondelete='CASCADE'), index=True)
    recipient_email = Column(String(320))
    # request: the account the sender wants access to
    target_owner_id = Column(ForeignKey('user.id', ondelete='CASCADE'), index=True)
    access_level = Column(String(32), nullable=False, default="view_only")
    custom_permissions = Column(JSONType)
    message = Column(Text)
    invitation_token = Column(String(128), unique=True, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    share_expires_at = Column(DateTime(True))
    expires_at = Column(DateTime(True), nullable=False)
    responded_at = Column(DateTime(True))
    share_id = Column(ForeignKey('account_share.id', ondelete='SET NULL'))

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    target_owner = relationship("User", foreign_keys=[target_owner_id])


class AccountShareActivity(Base):
    __tablename__ = 'account_share_activity'

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now, index=True)
    share_id = Column(ForeignKey('account_share.id', ondelete='CASCADE'), index=True)
    invitation_id = Column(ForeignKey('account_share_invitation.id', ondelete='CASCADE'), index=True)
    actor_id = Column(ForeignKey('user.id', ondelete='SET NULL'), index=True)
    owner_id = Column(ForeignKey('user.id', ondelete='CASCADE'), index=True)
    recipient_id = Column(ForeignKey('user.id', ondelete='CASCADE'), index=True)
    action = Column(String(64), nullable=False)
    action_type = Column(String(16), nullable=False, default="info")
    description = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(1024))
    meta = Column("metadata", JSONType)
