# marketplace/services/storage.py
import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import unquote, urlparse

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings
from fastapi import Depends

from marketplace.core.config import settings
from marketplace.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class BlobStorage:
    """Object storage backed by one Azure Blob container."""

    def __init__(self, service_client: BlobServiceClient, container: str, public_base_url: str = ""):
        self.service_client = service_client
        self.container = container
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, path: str, blob_url: Optional[str] = None) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        if blob_url:
            return blob_url
        return self.service_client.get_blob_client(container=self.container, blob=path).url

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        blob_client = self.service_client.get_blob_client(container=self.container, blob=path)
        content_settings = ContentSettings(content_type=content_type) if content_type else None
        try:
            blob_client.upload_blob(data, overwrite=False, content_settings=content_settings)
        except AzureError as e:
            logger.error("blob upload failed path=%s err=%s", path, e)
            raise UpstreamUnavailable("STORAGE_UPLOAD_FAILED", "Could not store the image.")
        return self.public_url(path, blob_client.url)

    def delete(self, path: str) -> None:
        blob_client = self.service_client.get_blob_client(container=self.container, blob=path)
        try:
            blob_client.delete_blob()
        except ResourceNotFoundError:
            # someone else got there first
            logger.info("blob already gone path=%s", path)

    def path_from_url(self, url: str) -> Optional[str]:
        """Storage path for a URL we handed out, or None if it isn't ours."""
        parsed = urlparse(url or "")
        if not parsed.scheme or not parsed.path:
            return None
        path = unquote(parsed.path).lstrip("/")
        if self.public_base_url and url.startswith(self.public_base_url + "/"):
            base_path = urlparse(self.public_base_url).path.strip("/")
            if base_path and path.startswith(base_path + "/"):
                path = path[len(base_path) + 1:]
            return path or None
        prefix = f"{self.container}/"
        if path.startswith(prefix):
            return path[len(prefix):] or None
        return None


def build_storage(cfg) -> Optional[BlobStorage]:
    """Connect once and make sure the container exists. None when storage is unusable."""
    if not cfg.AZURE_STORAGE_CONNECTION_STRING:
        logger.warning("AZURE_STORAGE_CONNECTION_STRING is missing; image storage disabled")
        return None
    try:
        client = BlobServiceClient.from_connection_string(
            cfg.AZURE_STORAGE_CONNECTION_STRING,
            connection_timeout=cfg.STORAGE_TIMEOUT_SECONDS,
            read_timeout=cfg.STORAGE_TIMEOUT_SECONDS,
            retry_total=cfg.STORAGE_RETRY_TOTAL,
        )
        client.create_container(cfg.AZURE_CONTAINER_NAME, public_access="blob")
    except ResourceExistsError:
        pass
    except (AzureError, ValueError) as e:
        logger.error("blob storage unreachable; image storage disabled: %s", e)
        return None
    return BlobStorage(client, cfg.AZURE_CONTAINER_NAME, cfg.STORAGE_PUBLIC_BASE_URL)


@lru_cache()
def get_storage_optional() -> Optional[BlobStorage]:
    """The configured storage, or None. Warmed once in the app lifespan."""
    return build_storage(settings)


def get_storage(storage: Optional[BlobStorage] = Depends(get_storage_optional)) -> BlobStorage:
    if storage is None:
        raise UpstreamUnavailable("STORAGE_NOT_CONFIGURED", "Image storage is not configured.")
    return storage
