import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.errors import NotFound
from marketplace.models.listing import Listing
from marketplace.models.wishlist import WishlistEntry
from marketplace.services.listings import active_clause

logger = logging.getLogger(__name__)


class WishlistStore:
    """Saved-for-later listings. Same idempotent add/remove as interests, no emails."""

    def __init__(self, db: Session):
        self.db = db

    def is_saved(self, listing_id: int, user_id: str) -> bool:
        q = self.db.query(WishlistEntry).filter(
            WishlistEntry.listing_id == listing_id, WishlistEntry.user_id == user_id
        )
        return bool(self.db.query(q.exists()).scalar())

    def add(self, listing_id: int, user_id: str) -> bool:
        """True when a new entry was written, False when it was already saved."""
        if self.db.get(Listing, listing_id) is None:
            raise NotFound("LISTING_NOT_FOUND", "Listing not found")
        if self.is_saved(listing_id, user_id):
            return False
        self.db.add(WishlistEntry(listing_id=listing_id, user_id=user_id))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        logger.info("wishlist add listing=%s user=%s", listing_id, user_id)
        return True

    def remove(self, listing_id: int, user_id: str) -> bool:
        deleted = (
            self.db.query(WishlistEntry)
            .filter(WishlistEntry.listing_id == listing_id, WishlistEntry.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return bool(deleted)

    def list_for_user(self, user_id: str) -> List[Listing]:
        # inner join drops entries whose listing has been deleted
        q = (
            select(Listing)
            .join(WishlistEntry, WishlistEntry.listing_id == Listing.id)
            .where(WishlistEntry.user_id == user_id, *active_clause())
            .order_by(WishlistEntry.created_at.desc(), WishlistEntry.id.desc())
        )
        return list(self.db.execute(q).unique().scalars().all())
