from sqlalchemy import Column, Integer, String, DateTime

from marketplace.core.db import Base
from marketplace.utils.clock import utcnow


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)

    # opaque id issued by the identity provider (claims "sub")
    user_id = Column(String(64), unique=True, nullable=False, index=True)

    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    phone = Column("phn_no", String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
