from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True, index=True)
    reporter_id = Column(String(64), nullable=False, index=True)
    reason = Column(String(100), nullable=False)
    details = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
