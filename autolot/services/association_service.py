"""
Full-replace semantics for tags, features, and images.

A supplied set (even an empty one) replaces every existing mapping row for the
vehicle; an omitted field never reaches this module. Image blobs are uploaded
before the old ImageSet row goes away, and the superseded URLs are handed back
so the caller can delete them after commit.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from autolot.database.models import (
    VehicleTag, VehicleFeature, VehicleTagMapping, VehicleFeatureMapping, VehicleImageSet,
)
from autolot.services.blob_store import BlobStore, ImageUpload
from autolot.services.lookup_service import resolve

_ASSOCIATIONS = {
    "tags": ("tag", VehicleTagMapping, "tag_id", VehicleTag),
    "features": ("feature", VehicleFeatureMapping, "feature_id", VehicleFeature),
}


@dataclass
class ImageReplacement:
    new_urls: list[str] = field(default_factory=list)
    superseded_urls: list[str] = field(default_factory=list)


def set_associations(db: Session, vehicle_id: int, kind: str, names: list[str]) -> list[int]:
    """Make the vehicle's ``kind`` mappings exactly match ``names`` (deduplicated, order kept)."""
    lookup_kind, mapping, fk_column, _ = _ASSOCIATIONS[kind]

    db.execute(delete(mapping).where(mapping.vehicle_id == vehicle_id))

    ids = []
    for name in dict.fromkeys(names):
        lookup_id = resolve(db, lookup_kind, name)
        if lookup_id in ids:
            continue
        db.add(mapping(vehicle_id=vehicle_id, **{fk_column: lookup_id}))
        ids.append(lookup_id)
    db.flush()
    return ids


def get_association_names(db: Session, vehicle_id: int, kind: str) -> list[str]:
    _, mapping, fk_column, lookup = _ASSOCIATIONS[kind]
    stmt = (
        select(lookup.name)
        .join(mapping, getattr(mapping, fk_column) == lookup.id)
        .where(mapping.vehicle_id == vehicle_id)
        .order_by(lookup.name)
    )
    return list(db.execute(stmt).scalars())


def get_image_set(db: Session, vehicle_id: int) -> VehicleImageSet | None:
    return db.execute(
        select(VehicleImageSet).where(VehicleImageSet.vehicle_id == vehicle_id)
    ).scalar_one_or_none()


def replace_images(
    db: Session,
    blob_store: BlobStore,
    vehicle_id: int,
    uploads: list[ImageUpload],
    primary_index: int = 0,
    clear: bool = False,
    uploaded: list[str] | None = None,
) -> ImageReplacement:
    """Replace the vehicle's ImageSet with ``uploads``.

    With no uploads and ``clear`` False this is a no-op. With no uploads and
    ``clear`` True the ImageSet is removed. Old blob URLs are returned in
    ``superseded_urls``; they are NOT deleted here. New URLs are also appended
    to ``uploaded`` as soon as they exist, so a caller can undo them if the
    database step fails afterwards.
    """
    result = ImageReplacement()
    if not uploads and not clear:
        return result

    # Upload first: a failure here leaves the existing images untouched
    result.new_urls = blob_store.upload_many(uploads)
    if uploaded is not None:
        uploaded.extend(result.new_urls)

    existing = get_image_set(db, vehicle_id)
    if existing is not None:
        result.superseded_urls = list(existing.image_urls or [])
        db.delete(existing)
        db.flush()

    if result.new_urls:
        uploaded_at = datetime.now(timezone.utc).isoformat()
        metadata = [
            {
                "original_name": upload.filename,
                "mime_type": upload.content_type,
                "size": upload.size,
                "uploaded_at": uploaded_at,
                "url": url,
            }
            for upload, url in zip(uploads, result.new_urls)
        ]
        if not 0 <= primary_index < len(result.new_urls):
            primary_index = 0
        db.add(VehicleImageSet(
            vehicle_id=vehicle_id,
            image_urls=result.new_urls,
            image_metadata=metadata,
            primary_image_index=primary_index,
        ))
        db.flush()

    return result


def delete_all_associations(db: Session, vehicle_id: int) -> list[str]:
    """Remove tag/feature mappings and the ImageSet; returns the image URLs to clean up."""
    for _, mapping, _, _ in _ASSOCIATIONS.values():
        db.execute(delete(mapping).where(mapping.vehicle_id == vehicle_id))
    image_set = get_image_set(db, vehicle_id)
    urls = []
    if image_set is not None:
        urls = list(image_set.image_urls or [])
        db.delete(image_set)
    db.flush()
    return urls
