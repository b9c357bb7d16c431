from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ListQuery(BaseModel):
    limit: Optional[int] = Field(50, ge=1, le=500)
    offset: Optional[int] = Field(0, ge=0)


class PageQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=500)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit if limit else 0)


class BaseEntityList(BaseModel):
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Update timestamp")
