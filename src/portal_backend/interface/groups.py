import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from portal_backend.interface.base import BaseEntityList
from portal_backend.interface.permissions import PermissionGet

_CODENAME = re.compile(r"^[a-z][a-z0-9_]*$")


def _validate_codename(v):
    if v is not None and not _CODENAME.match(v):
        raise ValueError('Codename must start with a letter and contain only lowercase letters, digits and underscores')
    return v


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Group name")
    codename: str = Field(min_length=1, max_length=255, description="Unique machine name")
    description: Optional[str] = Field(None, max_length=1024, description="Group description")
    is_active: bool = True
    permission_ids: Optional[List[str]] = Field(None, description="Initial permission set")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Group name cannot be empty or only whitespace')
        return v.strip()

    @field_validator('codename')
    @classmethod
    def validate_codename(cls, v):
        return _validate_codename(v)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    codename: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1024)
    is_active: Optional[bool] = None

    @field_validator('codename')
    @classmethod
    def validate_codename(cls, v):
        return _validate_codename(v)


class GroupGet(BaseEntityList):
    id: str = Field(description="Group unique identifier")
    name: str
    codename: str
    description: Optional[str] = None
    is_system: bool
    is_active: bool
    permission_count: int = 0
    user_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class GroupWithPermissions(GroupGet):
    permissions: List[PermissionGet] = Field(default_factory=list)


class GroupPermissionsAssign(BaseModel):
    permission_ids: List[str] = Field(default_factory=list, description="Replaces the group's permission set")


class UserGroupsAssign(BaseModel):
    groups: List[str] = Field(description="Group codenames, replaces the user's memberships")


class UserGroupGet(BaseModel):
    id: str
    name: str
    codename: str
    description: Optional[str] = None
    is_system: bool
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UserGroupWithPermissions(UserGroupGet):
    permissions: List[str] = []
