# marketplace/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from marketplace.core.config import settings
from marketplace.core.db import Base, engine
from marketplace.core.errors import register_error_handlers

# every model module must be imported before create_all
from marketplace.models.category import Category  # noqa: F401
from marketplace.models.interest import Interest  # noqa: F401
from marketplace.models.listing import Listing, ListingImage  # noqa: F401
from marketplace.models.profile import Profile  # noqa: F401
from marketplace.models.report import Report  # noqa: F401
from marketplace.models.wishlist import WishlistEntry  # noqa: F401

from marketplace.routers.categories import router as categories_router
from marketplace.routers.email_send import router as email_send_router
from marketplace.routers.health import router as health_router
from marketplace.routers.images import router as images_router
from marketplace.routers.interests import router as interests_router
from marketplace.routers.listings import router as listings_router
from marketplace.routers.profiles import router as profiles_router
from marketplace.routers.reports import router as reports_router
from marketplace.routers.wishlist import router as wishlist_router
from marketplace.services.storage import get_storage_optional

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("marketplace")


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    backend = engine.url.get_backend_name()
    try:
        with engine.connect() as conn:
            if backend == "postgresql":
                ver = conn.execute(text("select version()")).scalar_one()
                logger.info("PostgreSQL connected: %s", ver)
            else:
                conn.execute(text("select 1"))
                logger.info("DB connected backend=%s", backend)
    except SQLAlchemyError as e:
        logger.error("DB connection failed backend=%s: %s", backend, e)
    logger.info("tables: %s", ", ".join(sorted(Base.metadata.tables.keys())))


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    get_storage_optional()
    yield


app = FastAPI(title="Campus Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

routers = [
    health_router,
    categories_router,
    profiles_router,
    listings_router,
    interests_router,
    wishlist_router,
    reports_router,
    images_router,
    email_send_router,
]

for r in routers:
    app.include_router(r)


OPENAPI_TAGS = [
    {"name": "listings", "description": "Post, browse, edit, sell and delete listings."},
    {"name": "interests", "description": "Buyers flag interest; sellers see who is interested."},
    {"name": "wishlist", "description": "Listings a user saved for later."},
    {"name": "images", "description": "Listing photos, compressed to WebP before storage."},
    {"name": "profiles", "description": "Onboarding and public seller pages."},
    {"name": "email", "description": "Interest emails to sellers."},
]


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title=app.title,
        version="1.0.0",
        description=f"{settings.MARKETPLACE_NAME}: second-hand trading between students on one campus.",
        routes=app.routes,
        tags=OPENAPI_TAGS,
    )
    schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
    for key in [k for k, v in schemes.items() if v.get("type") == "http"]:
        schemes.pop(key)
    schemes["BearerAuth"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
    # categories and health carry no bearer dependency and stay public
    for path_item in schema.get("paths", {}).values():
        for op in path_item.values():
            if isinstance(op, dict) and op.get("security"):
                op["security"] = [{"BearerAuth": []}]
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi
