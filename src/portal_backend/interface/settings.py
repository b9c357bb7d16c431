from enum import Enum
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional

from portal_backend.interface.users import Gender, _validate_user_name


class Theme(str, Enum):
    light = "light"
    dark = "dark"
    dynamic = "dynamic"
    system = "system"


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    user_name: Optional[str] = Field(None, min_length=3, max_length=50)
    phone: Optional[str] = Field(None, max_length=64)
    bio: Optional[str] = Field(None, max_length=2048)
    image: Optional[str] = None
    gender: Optional[Gender] = None
    country: Optional[str] = Field(None, max_length=64)
    # accepted so it can be refused with a clear message
    email: Optional[EmailStr] = None

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        return _validate_user_name(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError('Name cannot be empty or only whitespace')
        return v.strip() if v else v

    model_config = ConfigDict(use_enum_values=True)


class ThemeUpdate(BaseModel):
    theme: Theme

    model_config = ConfigDict(use_enum_values=True)


class LanguageUpdate(BaseModel):
    language: str = Field(min_length=2, max_length=16)


class TimezoneUpdate(BaseModel):
    timezone: str = Field(min_length=1, max_length=64)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        if not v.strip():
            raise ValueError('Timezone is required')
        return v.strip()
