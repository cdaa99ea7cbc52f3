from sqlalchemy import Column, Integer, String, DateTime

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # URL-safe slug used by the browse page filters
    key = Column(String(100), unique=True, nullable=False, index=True)
    icon = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)
    icon_color = Column("iconColor", String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
