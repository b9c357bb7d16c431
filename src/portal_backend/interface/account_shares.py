from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Dict, List, Optional


class AccessLevel(str, Enum):
    view_only = "view_only"
    limited = "limited"
    full = "full"


class ShareStatus(str, Enum):
    active = "active"
    revoked = "revoked"
    expired = "expired"


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    cancelled = "cancelled"
    expired = "expired"


class InvitationType(str, Enum):
    share = "share"
    request = "request"


class ShareActivityAction(str, Enum):
    share_invited = "share_invited"
    share_accepted = "share_accepted"
    share_declined = "share_declined"
    share_revoked = "share_revoked"
    share_expired = "share_expired"
    share_cancelled = "share_cancelled"
    share_left = "share_left"
    access_request_sent = "access_request_sent"
    access_request_accepted = "access_request_accepted"
    access_request_declined = "access_request_declined"
    access_used = "access_used"
    permissions_updated = "permissions_updated"
    share_renewed = "share_renewed"


class ShareActionType(str, Enum):
    info = "info"
    warning = "warning"
    security = "security"


class ShareInvitationCreate(BaseModel):
    recipient_email: Optional[EmailStr] = None
    recipient_id: Optional[str] = None
    access_level: AccessLevel = AccessLevel.view_only
    custom_permissions: Optional[List[str]] = None
    message: Optional[str] = Field(None, max_length=2000)
    expires_in_days: int = Field(7, ge=1, le=90)
    share_expires_at: Optional[datetime] = Field(None, description="Expiry of the resulting share")

    @model_validator(mode='after')
    def require_recipient(self):
        if not self.recipient_email and not self.recipient_id:
            raise ValueError('Either recipient_email or recipient_id is required')
        return self

    model_config = ConfigDict(use_enum_values=True)


class AccessRequestCreate(BaseModel):
    owner_email: Optional[EmailStr] = None
    owner_id: Optional[str] = None
    access_level: AccessLevel = AccessLevel.view_only
    message: Optional[str] = Field(None, max_length=2000)
    expires_in_days: int = Field(7, ge=1, le=90)

    @model_validator(mode='after')
    def require_owner(self):
        if not self.owner_email and not self.owner_id:
            raise ValueError('Either owner_email or owner_id is required')
        return self

    model_config = ConfigDict(use_enum_values=True)


class InvitationResponse(BaseModel):
    accept: bool
    access_level: Optional[AccessLevel] = Field(None, description="Owner override when accepting an access request")
    custom_permissions: Optional[List[str]] = None

    model_config = ConfigDict(use_enum_values=True)


class AccountShareUpdate(BaseModel):
    access_level: Optional[AccessLevel] = None
    custom_permissions: Optional[List[str]] = None
    expires_at: Optional[datetime] = None
    note: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(use_enum_values=True)


class ShareUser(BaseModel):
    id: str
    name: str
    email: str
    user_name: str

    model_config = ConfigDict(from_attributes=True)


class AccountShareGet(BaseModel):
    id: str
    owner_id: str
    recipient_id: str
    access_level: str
    custom_permissions: Optional[List[str]] = None
    status: str
    expires_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    owner: Optional[ShareUser] = None
    recipient: Optional[ShareUser] = None

    model_config = ConfigDict(from_attributes=True)


class InvitationGet(BaseModel):
    id: str
    invitation_type: str
    sender_id: str
    recipient_id: Optional[str] = None
    recipient_email: Optional[str] = None
    target_owner_id: Optional[str] = None
    access_level: str
    custom_permissions: Optional[List[str]] = None
    message: Optional[str] = None
    invitation_token: str
    status: str
    expires_at: datetime
    share_expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    share_id: Optional[str] = None
    created_at: Optional[datetime] = None
    sender: Optional[ShareUser] = None

    model_config = ConfigDict(from_attributes=True)


class ShareActivityGet(BaseModel):
    id: str
    created_at: datetime
    share_id: Optional[str] = None
    invitation_id: Optional[str] = None
    actor_id: Optional[str] = None
    owner_id: Optional[str] = None
    recipient_id: Optional[str] = None
    action: str
    action_type: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ShareStatistics(BaseModel):
    shared_by_me: Dict[str, int]
    shared_with_me: Dict[str, int]
    pending_sent: int
    pending_received: int


class ShareCandidate(BaseModel):
    id: str
    name: str
    email: str
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
