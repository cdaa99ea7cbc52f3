import re
from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile

from marketplace.core.auth import get_current_profile
from marketplace.core.deps import get_media_pipeline
from marketplace.core.errors import PartialFailure
from marketplace.models.profile import Profile
from marketplace.schemas.media import ImageUploadOut
from marketplace.services.media import ImageUpload, MediaPipeline

router = APIRouter(prefix="/api", tags=["images"])

_SLUG_STRIP = re.compile(r"[^a-z0-9-]+")


def category_slug(raw: str) -> str:
    """Storage folder for a category name: lowercase, dashes, never empty."""
    slug = _SLUG_STRIP.sub("-", (raw or "").strip().lower()).strip("-")
    return slug or "general"


@router.post("/images", response_model=ImageUploadOut)
async def upload_images(
    files: List[UploadFile] = File(...),
    category: str = Form("general"),
    me: Profile = Depends(get_current_profile),
    media: MediaPipeline = Depends(get_media_pipeline),
):
    media.check_count(len(files))
    # one byte past the cap is enough for validate() to reject the file
    limit = media.max_upload_bytes + 1
    uploads = [
        ImageUpload(filename=f.filename or "image", content_type=f.content_type or "", data=await f.read(limit))
        for f in files
    ]
    try:
        urls = media.upload_many(uploads, me.user_id, category_slug(category))
    except PartialFailure as e:
        if not e.succeeded:
            raise
        # keep what made it; the client decides whether to retry the rest
        return ImageUploadOut(urls=e.succeeded, errors=e.errors, partial=True)
    return ImageUploadOut(urls=urls)
