# marketplace/schemas/listing.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field, HttpUrl
from .base import BaseSchema
from .common import CategoryOut, PageMeta


class ListingCreateIn(BaseSchema):
    name: str = ""
    description: Optional[str] = None
    # omitted or null: "price on request"
    price: Optional[int] = None
    category_id: Optional[int] = None
    condition: Optional[str] = None
    product_age_months: Optional[int] = None
    images: List[HttpUrl] = Field(default_factory=list)


class ListingUpdateIn(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    category_id: Optional[int] = None
    condition: Optional[str] = None
    product_age_months: Optional[int] = None
    images: Optional[List[HttpUrl]] = None


class SoldIn(BaseSchema):
    sold: bool = True


class ListingOut(BaseSchema):
    id: int
    owner_id: str
    category_id: int
    category: Optional[CategoryOut] = None
    name: str
    description: Optional[str] = None
    price: Optional[int] = None
    condition: str
    product_age_months: Optional[int] = None
    images: List[str]
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_sold: bool
    is_active: bool
    interested_count: int = 0
    is_owner: Optional[bool] = None
    is_saved: Optional[bool] = None
    is_interested: Optional[bool] = None


class ListingCard(BaseSchema):
    id: int
    owner_id: str
    name: str
    price: Optional[int] = None
    condition: str
    category_id: int
    category_name: Optional[str] = None
    thumbnail: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    interested_count: int = 0


class ListingPageOut(BaseSchema):
    meta: PageMeta
    data: List[ListingCard]
