# marketplace/services/media.py
"""Validation, compression and storage of listing images.

Images are re-encoded to WebP before upload. Cleanup (``delete``) is
best-effort: it logs and reports failure, it never raises, so a listing
update or delete is never blocked by storage.
"""
import io
import logging
import secrets
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from marketplace.core.errors import MarketplaceError, PartialFailure, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
}

MB = 1024 * 1024


@dataclass
class ImageUpload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class CompressOptions:
    max_size_mb: float = 2
    max_dimension: int = 1200
    quality: int = 85


@dataclass
class CompressionInfo:
    original_size: int
    compressed_size: int
    original_format: str
    final_format: str = "image/webp"

    @property
    def ratio(self) -> float:
        if not self.original_size:
            return 0.0
        return round((1 - self.compressed_size / self.original_size) * 100, 1)


@dataclass
class CompressedImage:
    filename: str
    data: bytes
    info: CompressionInfo
    content_type: str = "image/webp"


class MediaPipeline:
    MIN_QUALITY = 40

    def __init__(self, storage, max_images: int = 3, max_upload_mb: float = 10,
                 options: Optional[CompressOptions] = None, folder: str = "listing-images"):
        self.storage = storage
        self.max_images = max_images
        self.max_upload_mb = max_upload_mb
        self.options = options or CompressOptions()
        self.folder = folder

    # ---------- validation ----------
    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * MB)

    def check_count(self, count: int) -> None:
        if count > self.max_images:
            raise ValidationError(
                "TOO_MANY_IMAGES", f"Maximum {self.max_images} images allowed per listing"
            )
        if not count:
            raise ValidationError("NO_IMAGES", "Please upload at least one image")

    def validate(self, upload: ImageUpload) -> None:
        if (upload.content_type or "").lower() not in ALLOWED_TYPES:
            raise ValidationError(
                "INVALID_IMAGE_TYPE",
                f"Invalid file type: {upload.content_type or 'unknown'}. "
                "Please upload a JPEG, PNG, GIF, WebP or BMP image.",
            )
        if upload.size > self.max_upload_bytes:
            raise ValidationError(
                "IMAGE_TOO_LARGE",
                f"File too large. Maximum size is {self.max_upload_mb:g}MB.",
            )

    # ---------- compression ----------
    def compress(self, upload: ImageUpload, options: Optional[CompressOptions] = None) -> CompressedImage:
        opts = options or self.options
        try:
            with Image.open(io.BytesIO(upload.data)) as src:
                img = ImageOps.exif_transpose(src)
                img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ValidationError("IMAGE_COMPRESSION_FAILED", f"Failed to compress image: {e}")

        img.thumbnail((opts.max_dimension, opts.max_dimension))
        max_bytes = int(opts.max_size_mb * MB)
        quality = opts.quality
        data = _encode_webp(img, quality)
        # lower quality first, then shrink
        while len(data) > max_bytes and quality > self.MIN_QUALITY:
            quality -= 10
            data = _encode_webp(img, quality)
        while len(data) > max_bytes and min(img.size) > 64:
            img = img.resize((max(1, int(img.width * 0.8)), max(1, int(img.height * 0.8))))
            data = _encode_webp(img, quality)

        info = CompressionInfo(
            original_size=upload.size,
            compressed_size=len(data),
            original_format=upload.content_type,
        )
        logger.info(
            "image compressed name=%s %.2fMB -> %.2fMB (%s%%) %s -> %s",
            upload.filename, info.original_size / MB, info.compressed_size / MB,
            info.ratio, info.original_format, info.final_format,
        )
        return CompressedImage(filename=_webp_name(upload.filename), data=data, info=info)

    # ---------- storage ----------
    def object_path(self, owner_id: str, category: str) -> str:
        # timestamp + random suffix: concurrent uploads by one user never collide
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}.webp"
        return f"{self.folder}/{owner_id}/{category}/{name}"

    def upload(self, upload: ImageUpload, owner_id: str, category: str) -> str:
        self.validate(upload)
        compressed = self.compress(upload)
        path = self.object_path(owner_id, category)
        url = self.storage.upload(path, compressed.data, compressed.content_type)
        logger.info("image stored owner=%s path=%s", owner_id, path)
        return url

    def upload_many(self, uploads: Sequence[ImageUpload], owner_id: str, category: str) -> List[str]:
        """Upload files one by one; raise PartialFailure if any of them failed."""
        self.check_count(len(uploads))

        urls: List[str] = []
        errors: List[str] = []
        for i, upload in enumerate(uploads):
            try:
                urls.append(self.upload(upload, owner_id, category))
            except MarketplaceError as e:
                errors.append(f"Image {i + 1} ({upload.filename}): {e.message}")
        if errors:
            logger.warning("image batch owner=%s ok=%d failed=%d", owner_id, len(urls), len(errors))
            raise PartialFailure(urls, errors)
        return urls

    def delete(self, url: str) -> bool:
        path = self.storage.path_from_url(url)
        if not path:
            logger.warning("could not extract storage path from url=%s", url)
            return False
        try:
            self.storage.delete(path)
        except Exception:
            logger.exception("image delete failed path=%s", path)
            return False
        logger.info("image deleted path=%s", path)
        return True

    def delete_many(self, urls: Sequence[str]) -> int:
        return sum(1 for url in urls if self.delete(url))


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def _encode_webp(img: Image.Image, quality: int) -> bytes:
    buff = io.BytesIO()
    img.save(buff, format="WEBP", quality=quality, method=4)
    return buff.getvalue()


def _webp_name(filename: str) -> str:
    stem = (filename or "image").rsplit(".", 1)[0] or "image"
    return f"{stem}.webp"
