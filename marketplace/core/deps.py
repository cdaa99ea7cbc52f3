# marketplace/core/deps.py
"""Request-scoped wiring of services. Each service gets the request's session."""
from typing import Optional

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.db import get_db
from marketplace.services.interests import InterestLedger
from marketplace.services.listings import ListingRepository
from marketplace.services.mailer import Mailer, get_mailer
from marketplace.services.media import CompressOptions, MediaPipeline
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.profiles import ProfileService
from marketplace.services.storage import BlobStorage, get_storage, get_storage_optional
from marketplace.services.wishlist import WishlistStore


def build_pipeline(storage) -> MediaPipeline:
    return MediaPipeline(
        storage,
        max_images=settings.MEDIA_MAX_IMAGES,
        max_upload_mb=settings.MEDIA_MAX_UPLOAD_MB,
        options=CompressOptions(
            max_size_mb=settings.MEDIA_MAX_SIZE_MB,
            max_dimension=settings.MEDIA_MAX_DIMENSION,
            quality=settings.MEDIA_QUALITY,
        ),
    )


def get_media_pipeline(storage: BlobStorage = Depends(get_storage)) -> MediaPipeline:
    return build_pipeline(storage)


def get_cleanup_media(storage: Optional[BlobStorage] = Depends(get_storage_optional)) -> Optional[MediaPipeline]:
    # reads and deletes keep working without storage; cleanup is skipped
    return build_pipeline(storage) if storage is not None else None


def get_dispatcher(mailer: Mailer = Depends(get_mailer)) -> NotificationDispatcher:
    return NotificationDispatcher(mailer, brand=settings.MARKETPLACE_NAME)


def get_listing_repository(
    db: Session = Depends(get_db),
    media: Optional[MediaPipeline] = Depends(get_cleanup_media),
) -> ListingRepository:
    return ListingRepository(db, media=media, ttl_days=settings.LISTING_TTL_DAYS)


def get_interest_ledger(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> InterestLedger:
    return InterestLedger(
        db,
        dispatcher=dispatcher,
        defer=background_tasks.add_task,
        notify_on_withdrawal=settings.NOTIFY_ON_WITHDRAWAL,
    )


def get_wishlist_store(db: Session = Depends(get_db)) -> WishlistStore:
    return WishlistStore(db)


def get_profile_service(db: Session = Depends(get_db)) -> ProfileService:
    return ProfileService(db)
