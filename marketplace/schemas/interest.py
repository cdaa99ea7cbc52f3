# marketplace/schemas/interest.py
from datetime import datetime
from typing import List, Optional

from .base import BaseSchema


class InterestStateOut(BaseSchema):
    listing_id: int
    interested: bool
    count: int
    already_marked: bool = False


class InterestedBuyerOut(BaseSchema):
    user_id: str
    name: str
    avatar_url: Optional[str] = None
    member_since: datetime


class InterestedBuyersOut(BaseSchema):
    listing_id: int
    count: int
    buyers: List[InterestedBuyerOut]


class WishlistStateOut(BaseSchema):
    listing_id: int
    saved: bool
