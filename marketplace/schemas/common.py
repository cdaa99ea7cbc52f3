# marketplace/schemas/common.py
from typing import Optional

from pydantic import Field
from .base import BaseSchema


class PageMeta(BaseSchema):
    page: int = Field(1, ge=1)
    size: int = Field(12, ge=1, le=100)
    total: int = Field(0, ge=0)
    total_pages: int = Field(0, ge=0)


class CategoryOut(BaseSchema):
    id: int
    name: str
    key: str
    icon: Optional[str] = None
    color: Optional[str] = None
    icon_color: Optional[str] = None
