from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class LoginRequest(BaseModel):
    login: str = Field(min_length=1, description="Email or user name")
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int


class TokenInfo(BaseModel):
    user_id: str
    token_type: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    groups: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    is_superuser: bool = False
    is_admin: bool = False
    acting_for: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: Optional[str] = Field(None, description="Required when changing your own password")
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str = Field(min_length=1)
    user_id: Optional[str] = Field(None, description="Target user, administrators only")
