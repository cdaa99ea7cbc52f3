# marketplace/services/interests.py
"""Interest ledger: who wants to buy what.

Per (listing, user) there are two states, not interested and interested.
Both transitions are idempotent. The unique key on (listing_id, user_id) is
what actually guarantees a single row; the existence check in front of the
insert only saves a round trip.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import pydantic
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.errors import Forbidden, NotFound
from marketplace.models.interest import Interest
from marketplace.models.listing import Listing
from marketplace.models.profile import Profile
from marketplace.services.notifications import InterestNotice, NotificationDispatcher
from marketplace.services.profiles import ProfileService

logger = logging.getLogger(__name__)


@dataclass
class MarkResult:
    count: int
    interested: bool
    changed: bool

    @property
    def already_marked(self) -> bool:
        return self.interested and not self.changed


@dataclass
class ProfileSummary:
    user_id: str
    name: str
    avatar_url: Optional[str]
    member_since: object


class InterestLedger:
    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None,
                 defer: Optional[Callable] = None, notify_on_withdrawal: bool = True):
        self.db = db
        self.dispatcher = dispatcher
        # defer(fn, *args) schedules fn after the response (BackgroundTasks.add_task)
        self.defer = defer
        self.notify_on_withdrawal = notify_on_withdrawal
        self.profiles = ProfileService(db)

    def _listing(self, listing_id: int) -> Listing:
        listing = self.db.get(Listing, listing_id)
        if listing is None:
            raise NotFound("LISTING_NOT_FOUND", "Listing not found")
        return listing

    def _exists(self, listing_id: int, user_id: str) -> bool:
        q = self.db.query(Interest).filter(Interest.listing_id == listing_id, Interest.user_id == user_id)
        return self.db.query(q.exists()).scalar()

    # ---------- reads ----------
    def is_interested(self, listing_id: int, user_id: str) -> bool:
        return bool(self._exists(listing_id, user_id))

    def get_count(self, listing_id: int) -> int:
        return self.db.query(func.count(Interest.id)).filter(Interest.listing_id == listing_id).scalar() or 0

    def get_counts(self, listing_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(set(listing_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Interest.listing_id, func.count(Interest.id))
            .filter(Interest.listing_id.in_(ids))
            .group_by(Interest.listing_id)
            .all()
        )
        counts = {listing_id: 0 for listing_id in ids}
        counts.update({listing_id: n for listing_id, n in rows})
        return counts

    def list_interested_profiles(self, listing_id: int, caller_id: str) -> List[ProfileSummary]:
        listing = self._listing(listing_id)
        if listing.owner_id != caller_id:
            raise Forbidden("NOT_LISTING_OWNER", "Only the seller can see who is interested")
        user_ids = [
            uid for (uid,) in self.db.query(Interest.user_id).filter(Interest.listing_id == listing_id).all()
        ]
        profiles = self.profiles.by_user_ids(user_ids)
        return [
            ProfileSummary(user_id=p.user_id, name=p.name, avatar_url=p.avatar_url, member_since=p.created_at)
            for p in (profiles.get(uid) for uid in user_ids)
            if p is not None
        ]

    # ---------- transitions ----------
    def mark_interested(self, listing_id: int, user_id: str) -> MarkResult:
        listing = self._listing(listing_id)
        if listing.owner_id == user_id:
            raise Forbidden("OWN_LISTING", "You can't mark interest in your own listing")

        if self._exists(listing_id, user_id):
            return MarkResult(count=self.get_count(listing_id), interested=True, changed=False)

        self.db.add(Interest(listing_id=listing_id, user_id=user_id))
        try:
            self.db.commit()
        except IntegrityError:
            # lost the race against a concurrent mark; the row is there either way
            self.db.rollback()
            return MarkResult(count=self.get_count(listing_id), interested=True, changed=False)

        logger.info("interest marked listing=%s user=%s", listing_id, user_id)
        self._notify(listing, user_id, withdrawn=False)
        return MarkResult(count=self.get_count(listing_id), interested=True, changed=True)

    def unmark_interested(self, listing_id: int, user_id: str) -> MarkResult:
        listing = self._listing(listing_id)
        deleted = (
            self.db.query(Interest)
            .filter(Interest.listing_id == listing_id, Interest.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info("interest withdrawn listing=%s user=%s", listing_id, user_id)
            if self.notify_on_withdrawal:
                self._notify(listing, user_id, withdrawn=True)
        return MarkResult(count=self.get_count(listing_id), interested=False, changed=bool(deleted))

    # ---------- notification ----------
    def build_notice(self, listing: Listing, buyer: Optional[Profile], seller: Optional[Profile],
                     withdrawn: bool) -> Optional[InterestNotice]:
        if buyer is None or seller is None:
            return None
        try:
            return InterestNotice(
                listing_name=listing.name,
                buyer_name=buyer.name,
                buyer_email=buyer.email,
                seller_name=seller.name,
                seller_email=seller.email,
                withdrawn=withdrawn,
            )
        except pydantic.ValidationError as e:
            logger.warning("interest notice incomplete listing=%s: %s", listing.id, e.errors())
            return None

    def _notify(self, listing: Listing, buyer_id: str, withdrawn: bool) -> None:
        if self.dispatcher is None:
            return
        profiles = self.profiles.by_user_ids([buyer_id, listing.owner_id])
        notice = self.build_notice(listing, profiles.get(buyer_id), profiles.get(listing.owner_id), withdrawn)
        if notice is None:
            logger.warning("skipping interest email listing=%s buyer=%s: missing contact details", listing.id, buyer_id)
            return
        if self.defer is not None:
            self.defer(self.dispatcher.notify, notice)
        else:
            self.dispatcher.notify(notice)
