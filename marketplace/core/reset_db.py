# marketplace/core/reset_db.py
import logging

from sqlalchemy.orm import Session

from marketplace.core.db import Base, SessionLocal, engine
from marketplace.models.category import Category
from marketplace.models.interest import Interest  # noqa: F401
from marketplace.models.listing import Listing, ListingImage  # noqa: F401
from marketplace.models.profile import Profile  # noqa: F401
from marketplace.models.report import Report  # noqa: F401
from marketplace.models.wishlist import WishlistEntry  # noqa: F401

logger = logging.getLogger(__name__)

# (name, key, icon, color, icon_color)
CATEGORIES = [
    ("Books", "books", "book", "#E0F2FE", "#0369A1"),
    ("Electronics", "electronics", "laptop", "#EDE9FE", "#6D28D9"),
    ("Furniture", "furniture", "sofa", "#FEF3C7", "#B45309"),
    ("Clothing", "clothing", "shirt", "#FCE7F3", "#BE185D"),
    ("Sports", "sports", "dumbbell", "#DCFCE7", "#15803D"),
    ("Stationery", "stationery", "pencil", "#FFEDD5", "#C2410C"),
    ("Kitchen", "kitchen", "utensils", "#FEE2E2", "#B91C1C"),
    ("Others", "others", "package", "#F3F4F6", "#374151"),
]


def seed_categories(db: Session) -> int:
    existing = {key for (key,) in db.query(Category.key).all()}
    added = 0
    for name, key, icon, color, icon_color in CATEGORIES:
        if key in existing:
            continue
        db.add(Category(name=name, key=key, icon=icon, color=color, icon_color=icon_color))
        added += 1
    db.commit()
    return added


# run once, by hand
def reset_db():
    logger.info("resetting database %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.drop_all(bind=engine, checkfirst=True)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        added = seed_categories(db)
    logger.info("reset done, %d categories seeded", added)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    reset_db()
