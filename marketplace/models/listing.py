from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)

    owner_id = Column("user_id", String(64), nullable=False, index=True)
    category_id = Column("category", Integer, ForeignKey("categories.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    # NULL means "price on request"
    price = Column(Integer, nullable=True)
    condition = Column(String(30), nullable=False)
    product_age_months = Column("productAge", Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # NULL means the listing never expires
    expires_at = Column("expired_at", DateTime(timezone=True), nullable=True, index=True)
    is_sold = Column(Boolean, nullable=False, default=False)

    category = relationship("Category", lazy="joined")
    images = relationship(
        "ListingImage",
        cascade="all, delete-orphan",
        back_populates="listing",
        order_by="ListingImage.position",
        lazy="selectin",
    )

    @property
    def image_urls(self):
        return [img.url for img in (self.images or [])]

    @property
    def category_name(self):
        return self.category.name if self.category is not None else None


class ListingImage(Base):
    __tablename__ = "listing_images"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    url = Column(String(1024), nullable=False)

    listing = relationship("Listing", back_populates="images")
