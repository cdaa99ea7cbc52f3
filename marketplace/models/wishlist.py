from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class WishlistEntry(Base):
    __tablename__ = "wishlist"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("listing_id", "user_id", name="uq_wishlist_listing_user"),)
