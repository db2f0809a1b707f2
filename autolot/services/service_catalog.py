"""Service catalog: create entries (with an optional image) and list them."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autolot.api.schemas import ServiceCreate
from autolot.database.db import transaction
from autolot.database.models import ServiceOffering
from autolot.services.blob_store import BlobStore, ImageUpload
from autolot.services.errors import ServerError

logger = logging.getLogger(__name__)


def _to_dict(service: ServiceOffering) -> dict:
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "category": service.category,
        "price": service.price,
        "duration_minutes": service.duration_minutes,
        "warranty_months": service.warranty_months,
        "image_url": service.image_url,
        "created_at": str(service.created_at),
    }


def create_service(
    db: Session, blob_store: BlobStore, payload: ServiceCreate, image: ImageUpload | None = None
) -> dict:
    image_url = None
    if image is not None:
        image_url = blob_store.upload(image.data, image.filename, image.content_type)

    try:
        with transaction(db):
            service = ServiceOffering(**payload.model_dump(), image_url=image_url)
            db.add(service)
            db.flush()
            result = _to_dict(service)
    except SQLAlchemyError as exc:
        logger.exception("Failed to insert service %r", payload.name)
        if image_url:
            logger.warning("Removing orphaned service image %s", image_url)
            blob_store.delete(image_url)
        raise ServerError("Database error while saving the service") from exc

    logger.info("Service %s created (%s)", result["id"], result["category"])
    return result


def list_services(db: Session, category: str | None = None) -> list[dict]:
    stmt = select(ServiceOffering).order_by(ServiceOffering.name)
    if category and category != "all":
        stmt = stmt.where(ServiceOffering.category == category.lower())
    return [_to_dict(s) for s in db.execute(stmt).scalars()]
