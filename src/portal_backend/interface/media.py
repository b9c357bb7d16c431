from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from portal_backend.interface.base import ListQuery


class MediaGet(BaseModel):
    id: str
    user_id: str
    file_name: str
    original_name: str
    file_type: str
    mime_type: str
    file_extension: Optional[str] = None
    file_size: int
    folder: str
    is_public: bool
    title: Optional[str] = None
    alt_text: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    url: Optional[str] = None
    created_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MediaUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    alt_text: Optional[str] = Field(None, max_length=1024)
    description: Optional[str] = None
    folder: Optional[str] = Field(None, max_length=255)
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class MediaQuery(ListQuery):
    folder: Optional[str] = None
    mime_type: Optional[str] = None
    search: Optional[str] = None


class MediaListResponse(BaseModel):
    media: List[MediaGet]
    total: int


class MediaFolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class MediaFolderGet(BaseModel):
    name: str
    file_count: int = 0
    total_size: int = 0


class MediaStatistics(BaseModel):
    total_files: int
    total_size: int
    by_type: Dict[str, int]
    by_folder: Dict[str, int]


class MediaAccessKey(BaseModel):
    media_id: str
    access_key: str
    access_url: str
