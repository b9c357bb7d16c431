import re
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional

_CODENAME = re.compile(r"^[a-z][a-z0-9_]*$")


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    codename: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1024)
    category: str = Field("general", min_length=1, max_length=64)

    @field_validator('codename')
    @classmethod
    def validate_codename(cls, v):
        if not _CODENAME.match(v):
            raise ValueError('Codename must start with a letter and contain only lowercase letters, digits and underscores')
        return v


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    codename: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1024)
    category: Optional[str] = Field(None, min_length=1, max_length=64)

    @field_validator('codename')
    @classmethod
    def validate_codename(cls, v):
        if v is not None and not _CODENAME.match(v):
            raise ValueError('Codename must start with a letter and contain only lowercase letters, digits and underscores')
        return v


class PermissionGet(BaseModel):
    id: str
    name: str
    codename: str
    description: Optional[str] = None
    category: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PermissionStatistics(BaseModel):
    total: int
    by_category: Dict[str, int]
    unassigned: List[str]


class UserPermissionsResponse(BaseModel):
    user_id: str
    permissions: List[str]
    is_superuser: bool = False
    is_admin: bool = False


class PermissionCheck(BaseModel):
    permissions: List[str] = Field(min_length=1)
    require_all: bool = False


class PermissionCheckResponse(BaseModel):
    user_id: str
    granted: bool
    is_superuser: bool = False
    is_admin: bool = False
