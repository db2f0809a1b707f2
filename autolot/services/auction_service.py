"""
Auction purchases: vehicle + auction record written together, derived
money fields, status sync with inventory, listing and dashboard summary.
"""

import logging
import math
from datetime import date, datetime, timedelta

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from autolot.api.schemas import AUCTION_FIELDS, AuctionPurchaseCreate, AuctionPurchaseUpdate
from autolot.config.enums import AuctionStatus, VehicleStatus
from autolot.database.models import AuctionPurchase, Vehicle, VehicleImageSet, VehicleMake, VehicleModel
from autolot.services.blob_store import BlobStore, ImageUpload
from autolot.services.errors import ConflictError, NotFoundError, ValidationError
from autolot.services.inventory_service import (
    WriteResult, create_in_unit, creation_data, update_in_unit, write_unit,
)
from autolot.services.vehicle_writer import get_vehicle_or_404, set_status

logger = logging.getLogger(__name__)

AUCTION_SORT_FIELDS = {
    "id": AuctionPurchase.id,
    "purchase_date": AuctionPurchase.purchase_date,
    "purchase_price": AuctionPurchase.purchase_price,
    "total_investment": AuctionPurchase.total_investment,
    "list_price": AuctionPurchase.list_price,
    "sold_price": AuctionPurchase.sold_price,
    "status": AuctionPurchase.status,
    "profit": AuctionPurchase.profit,
    "created_at": AuctionPurchase.created_at,
    "updated_at": AuctionPurchase.updated_at,
    "make": VehicleMake.name,
    "model": VehicleModel.name,
    "year": Vehicle.year,
    "vin": Vehicle.vin,
}


def get_purchase_or_404(db: Session, auction_id: int) -> AuctionPurchase:
    purchase = db.get(AuctionPurchase, auction_id)
    if not purchase:
        raise NotFoundError("Auction purchase not found", code="AUCTION_NOT_FOUND")
    return purchase


def _derive(purchase: AuctionPurchase) -> None:
    """Recompute total_investment/profit and keep sold_at in step with status."""
    purchase.total_investment = (purchase.purchase_price or 0) + (purchase.additional_costs or 0)
    if purchase.status == AuctionStatus.SOLD.value and purchase.sold_price is not None:
        purchase.profit = purchase.sold_price - purchase.total_investment
    else:
        purchase.profit = None

    if purchase.status == AuctionStatus.SOLD.value:
        if purchase.sold_at is None:
            purchase.sold_at = datetime.utcnow()
    else:
        purchase.sold_at = None


def update_vehicle_status(db: Session, vehicle_id: int, status: str) -> None:
    """Mirror the auction status onto the vehicle (same transaction as the auction write)."""
    set_status(db, vehicle_id, status)


def create_purchase(db: Session, vehicle_id: int, data: dict) -> AuctionPurchase:
    """Insert the auction row for ``vehicle_id``; derived fields from ``data`` are ignored."""
    existing = db.execute(
        select(AuctionPurchase.id).where(AuctionPurchase.vehicle_id == vehicle_id)
    ).first()
    if existing:
        raise ConflictError("This vehicle already has an auction record.", code="DUPLICATE_AUCTION")

    purchase = AuctionPurchase(
        vehicle_id=vehicle_id,
        purchase_date=data["purchase_date"],
        purchase_price=data["purchase_price"],
        additional_costs=data.get("additional_costs") or 0,
        list_price=data.get("list_price"),
        sold_price=data.get("sold_price"),
        notes=data.get("notes"),
        status=data.get("status") or AuctionStatus.AUCTION.value,
    )
    _derive(purchase)
    db.add(purchase)
    db.flush()
    update_vehicle_status(db, vehicle_id, purchase.status)
    return purchase


def create_purchase_with_vehicle(
    db: Session, blob_store: BlobStore, payload: AuctionPurchaseCreate, uploads: list[ImageUpload]
) -> WriteResult:
    data = creation_data(payload)
    auction_data = {k: data.pop(k) for k in AUCTION_FIELDS}
    auction_data["status"] = data["status"]

    with write_unit(db, blob_store) as unit:
        vehicle = create_in_unit(db, blob_store, unit, data, uploads)
        purchase = create_purchase(db, vehicle.id, auction_data)
        vehicle_id, auction_id = vehicle.id, purchase.id

    logger.info("Auction purchase %s created for vehicle %s (vin=%s)", auction_id, vehicle_id, data.get("vin"))
    return WriteResult(vehicle_id=vehicle_id, auction_id=auction_id, cleanup=unit.cleanup(blob_store))


def update_purchase(
    db: Session, blob_store: BlobStore, auction_id: int, payload: AuctionPurchaseUpdate, uploads: list[ImageUpload]
) -> WriteResult:
    changes = payload.model_dump(exclude_unset=True)
    auction_changes = {k: changes.pop(k) for k in AUCTION_FIELDS if k in changes}
    status = changes.pop("status", None)

    with write_unit(db, blob_store) as unit:
        purchase = get_purchase_or_404(db, auction_id)
        vehicle = get_vehicle_or_404(db, purchase.vehicle_id)
        update_in_unit(db, blob_store, unit, vehicle, changes, uploads)

        for key, value in auction_changes.items():
            setattr(purchase, key, value)
        if status is not None:
            purchase.status = status
        _derive(purchase)
        purchase.updated_at = datetime.utcnow()
        db.flush()
        update_vehicle_status(db, vehicle.id, purchase.status)
        vehicle_id = vehicle.id

    logger.info("Auction purchase %s updated (status=%s)", auction_id, status or "unchanged")
    return WriteResult(vehicle_id=vehicle_id, auction_id=auction_id, cleanup=unit.cleanup(blob_store))


def release_to_inventory(db: Session, blob_store: BlobStore, auction_id: int) -> WriteResult:
    """Drop the auction record and put the vehicle back on the lot as available."""
    with write_unit(db, blob_store) as unit:
        purchase = get_purchase_or_404(db, auction_id)
        vehicle_id = purchase.vehicle_id
        db.execute(delete(AuctionPurchase).where(AuctionPurchase.id == auction_id))
        update_vehicle_status(db, vehicle_id, VehicleStatus.AVAILABLE.value)

    logger.info("Auction purchase %s released; vehicle %s back in inventory", auction_id, vehicle_id)
    return WriteResult(vehicle_id=vehicle_id, auction_id=auction_id, cleanup=unit.cleanup(blob_store))


# --- Reads ---

def list_purchases(
    db: Session,
    limit: int = 10,
    page: int = 1,
    search: str | None = None,
    sort_by: str = "purchase_date",
    sort_order: str = "asc",
    status: str | None = None,
) -> dict:
    if sort_by not in AUCTION_SORT_FIELDS:
        raise ValidationError(
            f"Invalid sort_by: {sort_by}. Allowed: {', '.join(AUCTION_SORT_FIELDS)}", code="INVALID_SORT"
        )
    sort_col = AUCTION_SORT_FIELDS[sort_by]
    order = sort_col.desc() if sort_order.lower() == "desc" else sort_col.asc()

    conditions = []
    if status and status != "all":
        conditions.append(AuctionPurchase.status == status)
    if search:
        term = f"%{search.lower()}%"
        conditions.append(or_(
            func.lower(Vehicle.vin).like(term),
            func.lower(VehicleMake.name).like(term),
            func.lower(VehicleModel.name).like(term),
        ))

    def joined(stmt):
        return (
            stmt.join(Vehicle, Vehicle.id == AuctionPurchase.vehicle_id)
            .join(VehicleMake, VehicleMake.id == Vehicle.make_id)
            .join(VehicleModel, VehicleModel.id == Vehicle.model_id)
            .where(*conditions)
        )

    total_items = db.execute(joined(select(func.count(AuctionPurchase.id)))).scalar_one()
    total_pages = math.ceil(total_items / limit) if limit else 0

    rows = db.execute(
        joined(select(AuctionPurchase, Vehicle, VehicleMake.name, VehicleModel.name, VehicleImageSet.image_urls))
        .outerjoin(VehicleImageSet, VehicleImageSet.vehicle_id == Vehicle.id)
        .order_by(order, AuctionPurchase.id)
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    purchases = [
        {
            "id": p.id,
            "vehicle_id": v.id,
            "make": make,
            "model": model,
            "year": v.year,
            "vin": v.vin,
            "purchase_date": p.purchase_date.isoformat(),
            "purchase_price": p.purchase_price,
            "additional_costs": p.additional_costs,
            "total_investment": p.total_investment,
            "list_price": p.list_price,
            "sold_price": p.sold_price,
            "status": p.status,
            "profit": p.profit,
            "notes": p.notes,
            "sold_at": p.sold_at.isoformat() if p.sold_at else None,
            "created_at": str(p.created_at),
            "updated_at": str(p.updated_at),
            "image_urls": list(image_urls or []),
        }
        for p, v, make, model, image_urls in rows
    ]

    return {
        "vehicles": purchases,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total_items,
            "items_per_page": limit,
            "has_next": page < total_pages,
            "has_previous": page > 1,
        },
    }


def summary_statistics(db: Session, date_from: date, date_to: date, status: str | None = None) -> dict:
    """Purchased totals by purchase_date, sold totals by sold_at; both ranges inclusive."""
    if date_from > date_to:
        raise ValidationError("date_from must be on or before date_to")

    sold_from = datetime.combine(date_from, datetime.min.time())
    sold_until = datetime.combine(date_to + timedelta(days=1), datetime.min.time())

    purchased_stmt = select(
        func.count(AuctionPurchase.id),
        func.coalesce(func.sum(AuctionPurchase.total_investment), 0),
    ).where(AuctionPurchase.purchase_date >= date_from, AuctionPurchase.purchase_date <= date_to)

    sold_stmt = select(
        func.count(AuctionPurchase.id),
        func.coalesce(func.sum(AuctionPurchase.profit), 0),
    ).where(
        AuctionPurchase.status == AuctionStatus.SOLD.value,
        AuctionPurchase.sold_price.is_not(None),
        AuctionPurchase.sold_at >= sold_from,
        AuctionPurchase.sold_at < sold_until,
    )

    if status:
        purchased_stmt = purchased_stmt.where(AuctionPurchase.status == status)
        sold_stmt = sold_stmt.where(AuctionPurchase.status == status)

    purchased, invested = db.execute(purchased_stmt).one()
    sold, profit = db.execute(sold_stmt).one()

    return {
        "total_investment": float(invested or 0),
        "vehicles_purchased": int(purchased or 0),
        "total_profit": float(profit or 0),
        "vehicles_sold": int(sold or 0),
    }
