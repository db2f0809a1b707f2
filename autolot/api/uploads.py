"""Request-side helpers for write endpoints: JSON or multipart bodies, image checks, blob store access."""

import os
from dataclasses import dataclass, field

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException

from autolot.config.enums import IMAGE_EXTENSION_MIME
from autolot.services.blob_store import BlobDeleteResult, BlobStore, ImageUpload
from autolot.services.errors import ValidationError

_FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


@dataclass
class WriteRequest:
    raw: str | bytes
    uploads: list[ImageUpload] = field(default_factory=list)


def validate_image(filename: str, content_type: str, data: bytes, max_bytes: int) -> ImageUpload:
    """Extension in the allow-list, MIME matching the extension, size within limit."""
    ext = os.path.splitext(filename or "")[1].lower()
    expected = IMAGE_EXTENSION_MIME.get(ext)
    if expected is None:
        raise ValidationError(
            f"Only {', '.join(e.lstrip('.').upper() for e in IMAGE_EXTENSION_MIME)} files allowed",
            code="INVALID_FILE",
        )
    if content_type != expected:
        raise ValidationError(
            f"File extension {ext} does not match content type {content_type}",
            code="INVALID_FILE",
        )
    if not data:
        raise ValidationError(f"File {filename} is empty", code="INVALID_FILE")
    if len(data) > max_bytes:
        raise ValidationError(
            f"Each file must be less than {max_bytes // (1024 * 1024)}MB",
            code="FILE_TOO_LARGE",
        )
    return ImageUpload(filename=filename, content_type=content_type, data=data)


async def _read_write_request(request: Request, file_field: str, max_files: int) -> WriteRequest:
    settings = request.app.state.settings
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(_FORM_TYPES):
        body = await request.body()
        return WriteRequest(raw=body or b"{}")

    too_many = ValidationError(f"Maximum {max_files} files allowed per upload", code="TOO_MANY_FILES")
    try:
        # one extra part for a "data" document sent as a file
        form = await request.form(max_files=max_files + 1)
    except HTTPException as exc:
        if str(exc.detail).startswith("Too many files"):
            raise too_many from exc
        raise ValidationError(str(exc.detail)) from exc
    files = [f for f in form.getlist(file_field) if isinstance(f, UploadFile)]
    if len(files) > max_files:
        raise too_many

    uploads = []
    for f in files:
        data = await f.read()
        uploads.append(validate_image(f.filename, f.content_type, data, settings.max_image_bytes))

    raw = form.get("data") or "{}"
    if isinstance(raw, UploadFile):
        raw = await raw.read()
    return WriteRequest(raw=raw, uploads=uploads)


async def vehicle_write_request(request: Request) -> WriteRequest:
    """Dependency: vehicle/auction writes accept up to ``max_image_count`` ``images`` files."""
    return await _read_write_request(request, "images", request.app.state.settings.max_image_count)


async def service_write_request(request: Request) -> WriteRequest:
    """Dependency: service catalog writes accept a single ``image`` file."""
    return await _read_write_request(request, "image", 1)


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def cleanup_meta(cleanup: list[BlobDeleteResult]) -> dict:
    """Response ``meta`` block reporting post-commit blob deletes."""
    return {
        "blob_cleanup": {
            "deleted": [r.url for r in cleanup if r.deleted],
            "failed": [{"url": r.url, "error": r.error} for r in cleanup if not r.deleted],
        }
    }
