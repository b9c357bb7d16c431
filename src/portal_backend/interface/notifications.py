from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from portal_backend.interface.base import ListQuery


class NotificationType(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    system = "system"
    account_share = "account_share"


class NotificationPriority(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class NotificationStatus(str, Enum):
    read = "read"
    unread = "unread"


class NotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    notification_type: NotificationType = NotificationType.info
    priority: NotificationPriority = NotificationPriority.normal
    link: Optional[str] = Field(None, max_length=1024)
    user_id: Optional[str] = Field(None, description="Recipient, defaults to the caller")
    metadata: Optional[dict] = None

    model_config = ConfigDict(use_enum_values=True)


class NotificationUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    message: Optional[str] = Field(None, min_length=1)
    notification_type: Optional[NotificationType] = None
    priority: Optional[NotificationPriority] = None
    link: Optional[str] = Field(None, max_length=1024)
    is_read: Optional[bool] = None

    model_config = ConfigDict(use_enum_values=True)


class NotificationGet(BaseModel):
    id: str
    user_id: str
    created_by: Optional[str] = None
    title: str
    message: str
    notification_type: str
    priority: str
    link: Optional[str] = None
    read_at: Optional[datetime] = None
    metadata: Optional[dict] = Field(None, validation_alias="meta")
    created_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class NotificationQuery(ListQuery):
    status: Optional[NotificationStatus] = None
    notification_type: Optional[NotificationType] = None
    priority: Optional[NotificationPriority] = None

    model_config = ConfigDict(use_enum_values=True)


class NotificationListResponse(BaseModel):
    notifications: List[NotificationGet]
    total: int
    unread: int


class MarkReadRequest(BaseModel):
    notification_ids: Optional[List[str]] = Field(None, description="Marks everything when omitted")
