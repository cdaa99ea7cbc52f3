# marketplace/services/discovery.py
"""Filtering, sorting and paging of an already-fetched list of listings."""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, List, Optional, Sequence, TypeVar

from marketplace.utils.clock import as_utc

T = TypeVar("T")

DEFAULT_SORT = "newest"
SORT_KEYS = ("newest", "oldest", "price_asc", "price_desc", "name_asc", "name_desc")
SORT_ALIASES = {"price_low": "price_asc", "price_high": "price_desc"}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ListingFilters:
    query: Optional[str] = None
    category_id: Optional[int] = None
    condition: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    max_age_months: Optional[int] = None
    sort: str = DEFAULT_SORT


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.size) if self.size else 0


def normalize_sort(sort: Optional[str]) -> str:
    key = (sort or "").strip().lower()
    key = SORT_ALIASES.get(key, key)
    return key if key in SORT_KEYS else DEFAULT_SORT


def matches_query(listing, query: str) -> bool:
    q = query.strip().lower()
    if not q:
        return True
    haystack = (
        listing.name or "",
        listing.description or "",
        getattr(listing, "category_name", None) or "",
    )
    return any(q in field.lower() for field in haystack)


def filter_listings(listings: Sequence, filters: ListingFilters) -> list:
    result = list(listings)
    if filters.query:
        result = [l for l in result if matches_query(l, filters.query)]
    if filters.category_id is not None:
        result = [l for l in result if l.category_id == filters.category_id]
    if filters.condition:
        result = [l for l in result if l.condition == filters.condition]
    if filters.min_price is not None or filters.max_price is not None:
        lo = filters.min_price if filters.min_price is not None else -math.inf
        hi = filters.max_price if filters.max_price is not None else math.inf
        # "price on request" items always stay in
        result = [l for l in result if l.price is None or lo <= l.price <= hi]
    if filters.max_age_months is not None:
        result = [
            l for l in result
            if l.product_age_months is not None and l.product_age_months <= filters.max_age_months
        ]
    return result


def _created(listing) -> datetime:
    return as_utc(listing.created_at) or _EPOCH


def sort_listings(listings: Sequence, sort: Optional[str] = None) -> list:
    key = normalize_sort(sort)
    items = list(listings)
    # list.sort is stable, also with reverse=True
    if key == "newest":
        items.sort(key=_created, reverse=True)
    elif key == "oldest":
        items.sort(key=_created)
    elif key == "price_asc":
        items.sort(key=lambda l: l.price or 0)
    elif key == "price_desc":
        items.sort(key=lambda l: l.price or 0, reverse=True)
    elif key == "name_asc":
        items.sort(key=lambda l: (l.name or "").casefold())
    elif key == "name_desc":
        items.sort(key=lambda l: (l.name or "").casefold(), reverse=True)
    return items


def paginate(items: Sequence[T], page: int = 1, size: int = 12) -> Page[T]:
    page = max(1, page)
    start = (page - 1) * size
    return Page(items=list(items[start:start + size]), total=len(items), page=page, size=size)


def discover(listings: Sequence, filters: ListingFilters, page: int = 1, size: int = 12) -> Page:
    return paginate(sort_listings(filter_listings(listings, filters), filters.sort), page, size)
