# marketplace/schemas/report.py
from typing import Optional

from pydantic import Field
from .base import BaseSchema


class ReportIn(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=100)
    details: Optional[str] = Field(None, max_length=2000)


class ReportOut(BaseSchema):
    id: int
    listing_id: Optional[int] = None
    status: str
