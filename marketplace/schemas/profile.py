# marketplace/schemas/profile.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field
from .base import BaseSchema
from .listing import ListingCard


class ProfileCreateIn(BaseSchema):
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class ProfileUpdateIn(BaseSchema):
    phone: Optional[str] = Field(None, max_length=32)


class ProfileOut(BaseSchema):
    user_id: str
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime


class PublicProfileOut(BaseSchema):
    user_id: str
    name: str
    avatar_url: Optional[str] = None
    member_since: datetime
    is_own_profile: bool = False
    listings: List[ListingCard] = Field(default_factory=list)
