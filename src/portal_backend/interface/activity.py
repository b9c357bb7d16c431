from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from portal_backend.interface.base import ListQuery


class LogLevel(str, Enum):
    debug = "DEBUG"
    info = "INFO"
    warning = "WARNING"
    error = "ERROR"
    critical = "CRITICAL"


class ActivityLogGet(BaseModel):
    id: str
    created_at: datetime
    user_id: Optional[str] = None
    level: str
    message: str
    action: Optional[str] = None
    module: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: Optional[int] = None
    metadata: Optional[dict] = Field(None, validation_alias="meta")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ActivityLogQuery(ListQuery):
    user_id: Optional[str] = None
    level: Optional[LogLevel] = None
    action: Optional[str] = None
    module: Optional[str] = None
    search: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class ActivityLogListResponse(BaseModel):
    logs: List[ActivityLogGet]
    total: int


class ActivityStatistics(BaseModel):
    total: int
    by_level: Dict[str, int]
    by_module: Dict[str, int]
    by_action: Dict[str, int]


class ActivityCleanupResult(BaseModel):
    deleted: int
    older_than_days: int
