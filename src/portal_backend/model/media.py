from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from portal_backend.utils import new_id, utc_now
from .base import Base, UUID, JSONType


class Media(Base):
    __tablename__ = 'media'

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(True), nullable=False, default=utc_now, onupdate=utc_now)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    file_name = Column(String(255), unique=True, nullable=False)
    original_name = Column(String(255), nullable=False)
    file_type = Column(String(32), nullable=False, default="other")
    mime_type = Column(String(255), nullable=False)
    file_extension = Column(String(32))
    file_size = Column(BigInteger, nullable=False)
    storage_path = Column(String(1024), nullable=False)
    folder = Column(String(255), nullable=False, default="general", index=True)
    access_key = Column(String(64), unique=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    title = Column(String(255))
    alt_text = Column(String(1024))
    description = Column(Text)
    tags = Column(JSONType)
    checksum_sha256 = Column(String(64))
    last_accessed = Column(DateTime(True))
    meta = Column("metadata", JSONType)

    user = relationship("User", back_populates="media")


class MediaFolder(Base):
    __tablename__ = 'media_folder'
    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='media_folder_user_id_name_key'),
    )

    id = Column(UUID, primary_key=True, default=new_id)
    created_at = Column(DateTime(True), nullable=False, default=utc_now)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
