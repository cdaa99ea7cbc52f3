#marketplace/services/listings.py

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from marketplace.core.errors import Forbidden, NotFound, ValidationError
from marketplace.models.category import Category
from marketplace.models.interest import Interest
from marketplace.models.listing import Listing, ListingImage
from marketplace.models.report import Report
from marketplace.models.wishlist import WishlistEntry
from marketplace.services.discovery import ListingFilters, filter_listings, sort_listings
from marketplace.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

MAX_IMAGES = 3
EDITABLE_FIELDS = ("name", "description", "price", "category_id", "condition", "product_age_months", "images")


def is_active(listing: Listing, now: Optional[datetime] = None) -> bool:
    if listing.is_sold:
        return False
    expires_at = as_utc(listing.expires_at)
    if expires_at is None:
        return True
    return expires_at > (now or utcnow())


def active_clause(now: Optional[datetime] = None):
    now = now or utcnow()
    return (
        or_(Listing.expires_at.is_(None), Listing.expires_at > now),
        Listing.is_sold.is_(False),
    )


class ListingRepository:
    def __init__(self, db: Session, media=None, ttl_days: int = 30):
        self.db = db
        self.media = media
        self.ttl_days = ttl_days

    # ---------- validation ----------
    def _validate(self, fields: Dict[str, Any], creating: bool) -> None:
        if creating or "name" in fields:
            if not (fields.get("name") or "").strip():
                raise ValidationError("NAME_REQUIRED", "Please give your listing a name")
        if creating or "category_id" in fields:
            category_id = fields.get("category_id")
            if category_id is None:
                raise ValidationError("CATEGORY_REQUIRED", "Please choose a category")
            if self.db.get(Category, category_id) is None:
                raise ValidationError("INVALID_CATEGORY", "Unknown category")
        if creating or "condition" in fields:
            if not (fields.get("condition") or "").strip():
                raise ValidationError("CONDITION_REQUIRED", "Please choose a condition")
        price = fields.get("price")
        if price is not None and price <= 0:
            raise ValidationError("INVALID_PRICE", "Price must be greater than 0")
        age = fields.get("product_age_months")
        if age is not None and age < 0:
            raise ValidationError("INVALID_PRODUCT_AGE", "Product age cannot be negative")
        if creating or "images" in fields:
            images = fields.get("images") or []
            if not images:
                raise ValidationError("NO_IMAGES", "Please upload at least one image")
            if len(images) > MAX_IMAGES:
                raise ValidationError("TOO_MANY_IMAGES", f"Maximum {MAX_IMAGES} images allowed per listing")

    def _owned(self, listing_id: int, caller_id: str) -> Listing:
        listing = self.require(listing_id)
        if listing.owner_id != caller_id:
            raise Forbidden("NOT_LISTING_OWNER", "Only the seller can change this listing")
        return listing

    def _cleanup_images(self, urls: List[str]) -> None:
        if not urls or self.media is None:
            return
        for url in urls:
            # media.delete logs and swallows its own failures
            self.media.delete(url)

    # ---------- writes ----------
    def create(self, owner_id: str, fields: Dict[str, Any]) -> Listing:
        self._validate(fields, creating=True)
        now = utcnow()
        listing = Listing(
            owner_id=owner_id,
            category_id=fields["category_id"],
            name=fields["name"].strip(),
            description=fields.get("description") or None,
            price=fields.get("price"),
            condition=fields["condition"].strip(),
            product_age_months=fields.get("product_age_months"),
            created_at=now,
            expires_at=now + timedelta(days=self.ttl_days),
            is_sold=False,
        )
        for i, url in enumerate(fields["images"]):
            listing.images.append(ListingImage(position=i, url=str(url)))
        self.db.add(listing)
        self.db.commit()
        self.db.refresh(listing)
        logger.info("listing created id=%s owner=%s images=%d", listing.id, owner_id, len(listing.images))
        return listing

    def update(self, listing_id: int, caller_id: str, fields: Dict[str, Any]) -> Listing:
        listing = self._owned(listing_id, caller_id)
        fields = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        self._validate(fields, creating=False)

        for key in ("name", "condition"):
            if key in fields:
                setattr(listing, key, fields[key].strip())
        for key in ("description", "price", "category_id", "product_age_months"):
            if key in fields:
                setattr(listing, key, fields[key])

        removed: List[str] = []
        if "images" in fields:
            new_urls = [str(u) for u in fields["images"]]
            removed = [u for u in listing.image_urls if u not in new_urls]
            listing.images.clear()
            self.db.flush()
            for i, url in enumerate(new_urls):
                listing.images.append(ListingImage(position=i, url=url))

        self.db.commit()
        self.db.refresh(listing)
        logger.info("listing updated id=%s fields=%s", listing.id, sorted(fields))
        self._cleanup_images(removed)
        return listing

    def mark_sold(self, listing_id: int, caller_id: str, sold: bool = True) -> Listing:
        listing = self._owned(listing_id, caller_id)
        listing.is_sold = sold
        self.db.commit()
        self.db.refresh(listing)
        return listing

    def delete(self, listing_id: int, caller_id: str) -> None:
        listing = self._owned(listing_id, caller_id)
        urls = listing.image_urls

        # don't count on the store's ON DELETE CASCADE being configured
        self.db.query(Interest).filter(Interest.listing_id == listing_id).delete(synchronize_session=False)
        self.db.query(WishlistEntry).filter(WishlistEntry.listing_id == listing_id).delete(synchronize_session=False)
        # reports outlive the listing for moderation
        self.db.query(Report).filter(Report.listing_id == listing_id).update({Report.listing_id: None})
        self.db.delete(listing)
        self.db.commit()
        logger.info("listing deleted id=%s owner=%s", listing_id, caller_id)

        self._cleanup_images(urls)

    # ---------- reads ----------
    def get_by_id(self, listing_id: int) -> Optional[Listing]:
        return self.db.get(Listing, listing_id)

    def require(self, listing_id: int) -> Listing:
        listing = self.get_by_id(listing_id)
        if listing is None:
            raise NotFound("LISTING_NOT_FOUND", "Listing not found")
        return listing

    def list_by_owner(self, owner_id: str, active_only: bool = False) -> List[Listing]:
        q = select(Listing).where(Listing.owner_id == owner_id)
        if active_only:
            q = q.where(*active_clause())
        q = q.order_by(Listing.created_at.desc(), Listing.id.desc())
        return list(self.db.execute(q).unique().scalars().all())

    def list_by_category(self, category_id: int, exclude_id: Optional[int] = None, limit: int = 4) -> List[Listing]:
        q = select(Listing).where(Listing.category_id == category_id, *active_clause())
        if exclude_id is not None:
            q = q.where(Listing.id != exclude_id)
        q = q.order_by(Listing.created_at.desc()).limit(limit)
        return list(self.db.execute(q).unique().scalars().all())

    def list_active(self) -> List[Listing]:
        q = select(Listing).where(*active_clause()).order_by(Listing.created_at.desc(), Listing.id.desc())
        return list(self.db.execute(q).unique().scalars().all())

    def search(self, filters: ListingFilters) -> List[Listing]:
        return sort_listings(filter_listings(self.list_active(), filters), filters.sort)
