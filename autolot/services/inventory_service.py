"""
Transactional orchestrator for vehicle writes.

Each write runs as one unit of work:
    resolve lookups -> write vehicle -> reconcile tags/features/images -> commit
On any failure the transaction is rolled back, blobs uploaded during the unit
are deleted (best-effort), and a typed error is raised. Blobs superseded by a
successful write are deleted only after the commit; failures there are
reported in the result, never raised.
"""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from sqlalchemy import String, case, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from autolot.api.schemas import VehicleCreate, VehicleUpdate
from autolot.config.enums import AuctionStatus, BodyType, TAG_CATEGORIES, VehicleStatus
from autolot.database.db import transaction
from autolot.database.models import (
    AuctionPurchase, Document, Payment, Vehicle, VehicleMake, VehicleModel, VehicleImageSet,
    VehicleTag, VehicleTagMapping,
)
from autolot.services.association_service import (
    delete_all_associations, get_association_names, get_image_set, replace_images, set_associations,
)
from autolot.services.blob_store import BlobDeleteResult, BlobStore, ImageUpload
from autolot.services.errors import ConflictError, ServerError, ValidationError
from autolot.services.vehicle_writer import (
    ensure_vin_available, get_vehicle_or_404, insert_vehicle, update_vehicle as write_vehicle_changes,
)

logger = logging.getLogger(__name__)

INVENTORY_SORT_FIELDS = {
    "date_added": Vehicle.created_at,
    "price": Vehicle.price,
    "year": Vehicle.year,
    "mileage": Vehicle.mileage,
    "make": VehicleMake.name,
}


@dataclass
class WriteResult:
    vehicle_id: int
    auction_id: int | None = None
    cleanup: list[BlobDeleteResult] = field(default_factory=list)

    @property
    def cleanup_failures(self) -> list[BlobDeleteResult]:
        return [r for r in self.cleanup if not r.deleted]


@dataclass
class UnitOfWork:
    """Blob side effects of one write: what to undo on failure, what to delete after commit."""
    uploaded_urls: list[str] = field(default_factory=list)
    superseded_urls: list[str] = field(default_factory=list)

    def cleanup(self, blob_store: BlobStore) -> list[BlobDeleteResult]:
        if not self.superseded_urls:
            return []
        results = blob_store.delete(self.superseded_urls)
        failed = sum(1 for r in results if not r.deleted)
        if failed:
            logger.warning("Post-commit cleanup: %d of %d blob deletes failed", failed, len(results))
        return results


@contextmanager
def write_unit(db: Session, blob_store: BlobStore) -> Iterator[UnitOfWork]:
    """Transaction scope with blob compensation and error translation."""
    unit = UnitOfWork()
    try:
        with transaction(db):
            yield unit
    except Exception as exc:
        if unit.uploaded_urls:
            logger.warning("Write rolled back; removing %d freshly uploaded blob(s)", len(unit.uploaded_urls))
            blob_store.delete(unit.uploaded_urls)
        if isinstance(exc, IntegrityError) and _is_unique_violation(exc):
            raise _conflict_from_integrity(exc) from exc
        if isinstance(exc, SQLAlchemyError):
            logger.exception("Database error during vehicle write")
            raise ServerError("Database error while saving the vehicle") from exc
        raise


def _is_unique_violation(exc: IntegrityError) -> bool:
    # PostgreSQL: "duplicate key value violates unique constraint", SQLite: "UNIQUE constraint failed"
    detail = str(exc.orig).lower()
    return "unique" in detail and ("vin" in detail or "auction" in detail)


def _conflict_from_integrity(exc: IntegrityError) -> ConflictError:
    if "vin" in str(exc.orig).lower():
        return ConflictError("A vehicle with this VIN already exists.", code="DUPLICATE_VIN")
    return ConflictError("This vehicle already has an auction record.", code="DUPLICATE_AUCTION")


# --- Steps shared with the auction pipeline ---

def reconcile_associations(
    db: Session,
    blob_store: BlobStore,
    unit: UnitOfWork,
    vehicle_id: int,
    changes: dict,
    uploads: list[ImageUpload],
) -> None:
    """Replace each association the caller supplied; omitted ones stay untouched."""
    for kind in ("tags", "features"):
        if kind in changes and changes[kind] is not None:
            set_associations(db, vehicle_id, kind, changes[kind])
        elif kind in changes:
            # explicit null clears, same as an empty list
            set_associations(db, vehicle_id, kind, [])

    replacement = replace_images(
        db,
        blob_store,
        vehicle_id,
        uploads,
        primary_index=changes.get("primary_image_index") or 0,
        clear=bool(changes.get("clear_images")),
        uploaded=unit.uploaded_urls,
    )
    unit.superseded_urls.extend(replacement.superseded_urls)


def create_in_unit(
    db: Session, blob_store: BlobStore, unit: UnitOfWork, data: dict, uploads: list[ImageUpload]
) -> Vehicle:
    ensure_vin_available(db, data.get("vin"))
    vehicle = insert_vehicle(db, data)
    reconcile_associations(db, blob_store, unit, vehicle.id, data, uploads)
    return vehicle


def update_in_unit(
    db: Session,
    blob_store: BlobStore,
    unit: UnitOfWork,
    vehicle: Vehicle,
    changes: dict,
    uploads: list[ImageUpload],
) -> Vehicle:
    if changes.get("vin") and changes["vin"] != vehicle.vin:
        ensure_vin_available(db, changes["vin"], exclude_id=vehicle.id)
    write_vehicle_changes(db, vehicle, changes)
    reconcile_associations(db, blob_store, unit, vehicle.id, changes, uploads)
    return vehicle


# --- Public operations ---

def creation_data(payload: VehicleCreate) -> dict:
    """Dump a create payload; associations the caller did not send are left out."""
    data = payload.model_dump()
    for kind in ("tags", "features"):
        if kind not in payload.model_fields_set:
            data.pop(kind, None)
    return data


def create_vehicle(
    db: Session, blob_store: BlobStore, payload: VehicleCreate, uploads: list[ImageUpload]
) -> WriteResult:
    data = creation_data(payload)
    if data.get("status") == VehicleStatus.AUCTION.value:
        raise ValidationError(
            "Auction vehicles are created through the auction purchase endpoint",
            code="AUCTION_MANAGED_STATUS",
        )

    with write_unit(db, blob_store) as unit:
        vehicle = create_in_unit(db, blob_store, unit, data, uploads)
        vehicle_id = vehicle.id

    logger.info("Vehicle %s created (vin=%s, images=%d)", vehicle_id, data.get("vin"), len(uploads))
    return WriteResult(vehicle_id=vehicle_id, cleanup=unit.cleanup(blob_store))


def update_vehicle(
    db: Session, blob_store: BlobStore, vehicle_id: int, payload: VehicleUpdate, uploads: list[ImageUpload]
) -> WriteResult:
    changes = payload.model_dump(exclude_unset=True)

    with write_unit(db, blob_store) as unit:
        vehicle = get_vehicle_or_404(db, vehicle_id)
        if "status" in changes:
            _guard_auction_status(db, vehicle, changes["status"])
        update_in_unit(db, blob_store, unit, vehicle, changes, uploads)

    logger.info("Vehicle %s updated (fields=%s)", vehicle_id, sorted(changes))
    return WriteResult(vehicle_id=vehicle_id, cleanup=unit.cleanup(blob_store))


def delete_vehicle(db: Session, blob_store: BlobStore, vehicle_id: int) -> WriteResult:
    """Cascade to images, mappings and auction record; payments/documents keep their rows."""
    with write_unit(db, blob_store) as unit:
        vehicle = get_vehicle_or_404(db, vehicle_id)
        unit.superseded_urls.extend(delete_all_associations(db, vehicle_id))
        db.execute(delete(AuctionPurchase).where(AuctionPurchase.vehicle_id == vehicle_id))
        db.execute(update(Payment).where(Payment.vehicle_id == vehicle_id).values(vehicle_id=None))
        db.execute(update(Document).where(Document.vehicle_id == vehicle_id).values(vehicle_id=None))
        db.delete(vehicle)
        db.flush()

    logger.info("Vehicle %s deleted (%d image(s) queued for cleanup)", vehicle_id, len(unit.superseded_urls))
    return WriteResult(vehicle_id=vehicle_id, cleanup=unit.cleanup(blob_store))


def _guard_auction_status(db: Session, vehicle: Vehicle, status: str) -> None:
    """Auction-tracked vehicles change status through the auction endpoints only."""
    auction_status = db.execute(
        select(AuctionPurchase.status).where(AuctionPurchase.vehicle_id == vehicle.id)
    ).scalar_one_or_none()
    if auction_status is None:
        if status == VehicleStatus.AUCTION.value:
            raise ValidationError(
                f"Vehicle {vehicle.id} has no auction record; record the purchase through the auction endpoint",
                code="AUCTION_MANAGED_STATUS",
            )
        return
    if status != auction_status:
        allowed = ", ".join(s.value for s in AuctionStatus)
        raise ValidationError(
            f"Vehicle {vehicle.id} is tracked as an auction purchase; update its status ({allowed}) "
            "through the auction endpoint or release it to inventory first",
            code="AUCTION_MANAGED_STATUS",
        )


# --- Reads ---

def get_vehicle_detail(db: Session, vehicle_id: int) -> dict:
    vehicle = get_vehicle_or_404(db, vehicle_id)
    make, model = db.execute(
        select(VehicleMake.name, VehicleModel.name)
        .where(VehicleMake.id == vehicle.make_id, VehicleModel.id == vehicle.model_id)
    ).one()
    images = get_image_set(db, vehicle_id)
    auction_id = db.execute(
        select(AuctionPurchase.id).where(AuctionPurchase.vehicle_id == vehicle_id)
    ).scalar_one_or_none()

    return {
        "id": vehicle.id,
        "make": make,
        "model": model,
        "year": vehicle.year,
        "price": vehicle.price,
        "mileage": vehicle.mileage,
        "vin": vehicle.vin,
        "exterior_color": vehicle.exterior_color,
        "interior_color": vehicle.interior_color,
        "transmission": vehicle.transmission,
        "fuel_type": vehicle.fuel_type,
        "engine": vehicle.engine,
        "body_type": vehicle.body_type,
        "condition": vehicle.condition,
        "status": vehicle.status,
        "description": vehicle.description,
        "is_featured": vehicle.is_featured,
        "carfax_link": vehicle.carfax_link,
        "stock_number": vehicle.stock_number,
        "location": vehicle.location,
        "tags": get_association_names(db, vehicle_id, "tags"),
        "features": get_association_names(db, vehicle_id, "features"),
        "images": {
            "urls": list(images.image_urls) if images else [],
            "metadata": list(images.image_metadata) if images else [],
            "primary_index": images.primary_image_index if images else None,
        },
        "auction_id": auction_id,
        "created_at": str(vehicle.created_at),
        "updated_at": str(vehicle.updated_at),
    }


def _has_tag(name):
    return (
        select(VehicleTagMapping.vehicle_id)
        .join(VehicleTag, VehicleTag.id == VehicleTagMapping.tag_id)
        .where(VehicleTagMapping.vehicle_id == Vehicle.id, VehicleTag.name == name)
        .exists()
    )


def _inventory_filters(search: str | None, status: str | None, category: str | None) -> list:
    conditions = []
    if search:
        term = f"%{search.lower()}%"
        conditions.append(or_(
            func.lower(VehicleMake.name).like(term),
            func.lower(VehicleModel.name).like(term),
            func.lower(Vehicle.vin).like(term),
            cast(Vehicle.year, String).like(term),
        ))
    if status and status != "all":
        conditions.append(Vehicle.status == status)
    if category and category != "all":
        if category in {b.value for b in BodyType}:
            conditions.append(Vehicle.body_type == category)
        elif category == "electric":
            conditions.append(Vehicle.fuel_type == "electric")
        elif category in TAG_CATEGORIES:
            conditions.append(_has_tag(category))
    return conditions


def list_inventory(
    db: Session,
    category: str | None = "all",
    limit: int = 10,
    page: int = 1,
    search: str | None = None,
    sort_by: str = "date_added",
    sort_order: str = "desc",
    status: str | None = None,
) -> dict:
    """Filtered, sorted, paginated inventory plus counts over the same filter."""
    if sort_by not in INVENTORY_SORT_FIELDS:
        raise ValidationError(
            f"Invalid sort_by: {sort_by}. Allowed: {', '.join(INVENTORY_SORT_FIELDS)}", code="INVALID_SORT"
        )
    sort_col = INVENTORY_SORT_FIELDS[sort_by]
    order = sort_col.desc() if sort_order.lower() == "desc" else sort_col.asc()

    conditions = _inventory_filters(search, status, category)
    base = (
        select(Vehicle.id)
        .join(VehicleMake, VehicleMake.id == Vehicle.make_id)
        .join(VehicleModel, VehicleModel.id == Vehicle.model_id)
        .where(*conditions)
    )

    total_items = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    total_pages = math.ceil(total_items / limit) if limit else 0

    rows = db.execute(
        select(Vehicle, VehicleMake.name, VehicleModel.name)
        .join(VehicleMake, VehicleMake.id == Vehicle.make_id)
        .join(VehicleModel, VehicleModel.id == Vehicle.model_id)
        .where(*conditions)
        .order_by(order, Vehicle.id)
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    ids = [v.id for v, _, _ in rows]
    primary_images = _primary_image_urls(db, ids)

    vehicles = [
        {
            "id": v.id,
            "make": make,
            "model": model,
            "year": v.year,
            "vin": v.vin,
            "price": v.price,
            "mileage": v.mileage,
            "status": v.status,
            "body_type": v.body_type,
            "is_featured": v.is_featured,
            "location": v.location,
            "tags": get_association_names(db, v.id, "tags"),
            "date_added": v.created_at.date().isoformat() if v.created_at else None,
            "image_url": primary_images.get(v.id),
        }
        for v, make, model in rows
    ]

    return {
        "vehicles": vehicles,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total_items,
            "items_per_page": limit,
            "has_next": page < total_pages,
            "has_previous": page > 1,
        },
        "filters": _filter_stats(db, conditions),
    }


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _filter_stats(db: Session, conditions: list) -> dict:
    stats = db.execute(
        select(
            _count_where(Vehicle.status == "available"),
            _count_where(Vehicle.status == "sold"),
            _count_where(Vehicle.body_type == "sedan"),
            _count_where(Vehicle.body_type == "suv"),
            _count_where(Vehicle.body_type == "truck"),
            _count_where(Vehicle.fuel_type == "electric"),
            _count_where(_has_tag("luxury")),
            _count_where(_has_tag("compact")),
        )
        .join(VehicleMake, VehicleMake.id == Vehicle.make_id)
        .join(VehicleModel, VehicleModel.id == Vehicle.model_id)
        .where(*conditions)
    ).one()
    available, sold, sedan, suv, truck, electric, luxury, compact = (int(x or 0) for x in stats)
    return {
        "total_available": available,
        "total_sold": sold,
        "categories": {
            "sedan": sedan,
            "suv": suv,
            "truck": truck,
            "electric": electric,
            "luxury": luxury,
            "compact": compact,
        },
    }


def _primary_image_urls(db: Session, vehicle_ids: list[int]) -> dict[int, str]:
    if not vehicle_ids:
        return {}
    image_sets = db.execute(
        select(VehicleImageSet).where(VehicleImageSet.vehicle_id.in_(vehicle_ids))
    ).scalars()
    urls = {}
    for image_set in image_sets:
        if not image_set.image_urls:
            continue
        index = image_set.primary_image_index or 0
        if not 0 <= index < len(image_set.image_urls):
            index = 0
        urls[image_set.vehicle_id] = image_set.image_urls[index]
    return urls
