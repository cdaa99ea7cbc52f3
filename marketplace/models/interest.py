from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class Interest(Base):
    __tablename__ = "interested"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        # one interest per (listing, user); the ledger relies on this for idempotency
        UniqueConstraint("listing_id", "user_id", name="uq_interested_listing_user"),
    )
