"""
Uploads vehicle/service images and deletes superseded ones.

Uploads are part of a write (failure aborts the unit of work); deletes are
advisory: they never raise, and each failure is logged and reported back to
the caller. Orphaned blobs are tolerated, dangling DB references are not.

Uses Azure Blob Storage when a connection string is configured, otherwise an
in-memory store (local dev and tests).
"""

import logging
import re
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import unquote

from azure.core.exceptions import ResourceExistsError, ServiceRequestError, ServiceResponseError
from azure.storage.blob import ContainerClient, ContentSettings
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from autolot.config.settings import Settings
from autolot.services.errors import UploadError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class ImageUpload:
    """A validated file waiting to be uploaded."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class BlobDeleteResult:
    url: str
    deleted: bool
    error: str | None = None


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", filename.rsplit("/", 1)[-1].rsplit("\\", 1)[-1])
    return cleaned or "upload"


class BlobStore:
    """Base gateway: key generation, retrying upload, batch upload, advisory delete."""

    # Exceptions worth retrying; everything else fails the upload immediately
    transient_errors: tuple = ()

    def __init__(self, key_prefix: str = "vehicle-images", upload_workers: int = 4, upload_attempts: int = 3):
        self.key_prefix = key_prefix.strip("/")
        self.upload_workers = max(1, upload_workers)
        self.upload_attempts = max(1, upload_attempts)

    # --- Backend hooks ---

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    def _remove(self, url: str) -> None:
        raise NotImplementedError

    # --- Public API ---

    def make_key(self, filename: str) -> str:
        """Collision-resistant key: time prefix + short uuid + sanitized original name."""
        stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")
        return f"{self.key_prefix}/{stamp}-{uuid.uuid4().hex[:8]}-{sanitize_filename(filename)}"

    def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload bytes and return the public URL. Raises UploadError."""
        key = self.make_key(filename)
        retrying = Retrying(
            stop=stop_after_attempt(self.upload_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(self.transient_errors),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    url = self._put(key, data, content_type)
        except Exception as exc:
            logger.exception("Blob upload failed for %s", filename)
            raise UploadError(f"Failed to upload image '{filename}'") from exc
        logger.info("Uploaded blob %s (%d bytes)", key, len(data))
        return url

    def upload_many(self, files: list[ImageUpload]) -> list[str]:
        """Upload independent files concurrently; URLs are returned in input order.

        If any upload fails, the ones that succeeded are deleted (best-effort)
        and the first UploadError is raised.
        """
        if not files:
            return []
        workers = min(self.upload_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.upload, f.data, f.filename, f.content_type) for f in files]

        urls = []
        first_error = None
        for future in futures:
            exc = future.exception()
            if exc is not None:
                first_error = first_error or exc
            else:
                urls.append(future.result())

        if first_error is not None:
            if urls:
                self.delete(urls)
            raise first_error
        return urls

    def delete(self, urls: str | list[str]) -> list[BlobDeleteResult]:
        """Delete one or many blobs by URL. Never raises."""
        if isinstance(urls, str):
            urls = [urls]
        results = []
        for url in urls:
            if not url:
                continue
            try:
                self._remove(url)
                results.append(BlobDeleteResult(url=url, deleted=True))
            except Exception as exc:
                logger.warning("Failed to delete blob %s: %s", url, exc)
                results.append(BlobDeleteResult(url=url, deleted=False, error=str(exc)))
        return results


class AzureBlobStore(BlobStore):
    """Azure Blob Storage container; URLs are {endpoint}/{container}/{key}."""

    transient_errors = (ServiceRequestError, ServiceResponseError)

    def __init__(self, conn_str: str, container: str, **kwargs):
        super().__init__(**kwargs)
        self._container = ContainerClient.from_connection_string(conn_str, container_name=container)
        try:
            self._container.create_container()
        except ResourceExistsError:
            pass
        self._base_url = self._container.url.rstrip("/")

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        # Keys are unique per upload; a retry after a lost response rewrites the same blob
        blob = self._container.upload_blob(
            name=key,
            data=data,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )
        return blob.url

    def _blob_name(self, url: str) -> str:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL does not belong to container {self._base_url}")
        return unquote(url[len(prefix):].split("?", 1)[0])

    def _remove(self, url: str) -> None:
        self._container.delete_blob(self._blob_name(url), delete_snapshots="include")


class MemoryBlobStore(BlobStore):
    """Process-local store used when no Azure connection string is configured."""

    def __init__(self, base_url: str = "memory://vehicle-images", **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def _put(self, key: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self.objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"

    def _remove(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        key = url[len(prefix):] if url.startswith(prefix) else None
        with self._lock:
            if key is None or key not in self.objects:
                raise KeyError(f"No such blob: {url}")
            del self.objects[key]

    def urls(self) -> list[str]:
        with self._lock:
            return [f"{self.base_url}/{key}" for key in self.objects]


def build_blob_store(settings: Settings) -> BlobStore:
    kwargs = {
        "key_prefix": settings.blob_key_prefix,
        "upload_workers": settings.blob_upload_workers,
        "upload_attempts": settings.blob_upload_attempts,
    }
    if settings.azure_blob_conn_string:
        return AzureBlobStore(settings.azure_blob_conn_string, settings.azure_blob_container, **kwargs)
    logger.warning("AZURE_BLOB_CONN_STRING not set; images are kept in memory only")
    return MemoryBlobStore(base_url=f"memory://{settings.azure_blob_container}", **kwargs)
