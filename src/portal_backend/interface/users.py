from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, EmailStr
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from portal_backend.interface.base import BaseEntityList, PageQuery, Pagination
from portal_backend.model.auth import User


class UserStatus(str, Enum):
    active = "ACTIVE"
    inactive = "INACTIVE"
    suspended = "SUSPENDED"
    pending = "PENDING"


class AuthType(str, Enum):
    email = "EMAIL"
    google = "GOOGLE"
    phone = "PHONE"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


def _validate_user_name(v):
    if v is not None:
        if not v.replace('_', '').replace('-', '').replace('.', '').isalnum():
            raise ValueError('User name can only contain alphanumeric characters, underscores, hyphens, and dots')
    return v


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Display name")
    email: EmailStr = Field(description="User's email address")
    user_name: str = Field(min_length=3, max_length=50, description="Unique user name")
    password: str = Field(min_length=8, max_length=128, description="Initial password")
    phone: Optional[str] = Field(None, max_length=64)
    auth_type: AuthType = AuthType.email
    status: UserStatus = UserStatus.active
    gender: Optional[Gender] = None
    country: Optional[str] = None
    language: Optional[str] = "en"
    timezone: Optional[str] = "UTC"
    is_verified: bool = False
    groups: Optional[List[str]] = Field(None, description="Group codenames, defaults to the standard user group")

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        return _validate_user_name(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Name cannot be empty or only whitespace')
        return v.strip()

    model_config = ConfigDict(use_enum_values=True)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    user_name: Optional[str] = Field(None, min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    phone: Optional[str] = Field(None, max_length=64)
    bio: Optional[str] = None
    image: Optional[str] = None
    auth_type: Optional[AuthType] = None
    status: Optional[UserStatus] = None
    gender: Optional[Gender] = None
    country: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    theme: Optional[str] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        return _validate_user_name(v)

    model_config = ConfigDict(use_enum_values=True)


class UserGet(BaseEntityList):
    id: str = Field(description="User unique identifier")
    name: str
    email: str
    user_name: str
    phone: Optional[str] = None
    bio: Optional[str] = None
    image: Optional[str] = None
    auth_type: str
    status: str
    gender: Optional[str] = None
    country: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    theme: Optional[str] = None
    is_active: bool
    is_verified: bool
    is_protected: bool = False
    last_sign_in_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserList(BaseModel):
    id: str
    name: str
    email: str
    user_name: str
    auth_type: str
    status: str
    gender: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    users: List[UserList]
    total: int
    pagination: Pagination


class UserQuery(PageQuery):
    search: Optional[str] = None
    auth_type: Optional[AuthType] = None
    status: Optional[UserStatus] = None
    gender: Optional[Gender] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    model_config = ConfigDict(use_enum_values=True)


def user_search(db: Session, query, params: UserQuery):
    if params.search:
        term = f"%{params.search.strip()}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term), User.user_name.ilike(term)))
    if params.auth_type is not None:
        query = query.filter(User.auth_type == params.auth_type)
    if params.status is not None:
        query = query.filter(User.status == params.status)
    if params.gender is not None:
        query = query.filter(User.gender == params.gender)
    if params.is_active is not None:
        query = query.filter(User.is_active.is_(params.is_active))
    if params.is_verified is not None:
        query = query.filter(User.is_verified.is_(params.is_verified))

    return query.filter(User.is_trashed.is_(False))
