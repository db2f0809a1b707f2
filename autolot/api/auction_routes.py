"""Auction purchase endpoints: buy, update, release to inventory, listing, dashboard summary."""

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from autolot.api.schemas import AuctionPurchaseCreate, AuctionPurchaseUpdate
from autolot.api.uploads import WriteRequest, cleanup_meta, get_blob_store, vehicle_write_request
from autolot.config.enums import AuctionStatus
from autolot.database.db import get_db
from autolot.services import auction_service
from autolot.services.blob_store import BlobStore

auction_router = APIRouter(prefix="/auction", tags=["auction"])


def _write_response(message: str, result) -> dict:
    return {
        "status": "success",
        "message": message,
        "vehicle_id": result.vehicle_id,
        "auction_id": result.auction_id,
        "meta": cleanup_meta(result.cleanup),
    }


# --- Endpoints ---

@auction_router.post("/purchase", status_code=201)
def create_purchase(
    req: WriteRequest = Depends(vehicle_write_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    payload = AuctionPurchaseCreate.model_validate_json(req.raw)
    result = auction_service.create_purchase_with_vehicle(db, blob_store, payload, req.uploads)
    return _write_response("Auction purchase recorded", result)


@auction_router.put("/purchase/{auction_id}")
def update_purchase(
    auction_id: int,
    req: WriteRequest = Depends(vehicle_write_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Partial update of the vehicle and its auction record together."""
    payload = AuctionPurchaseUpdate.model_validate_json(req.raw)
    result = auction_service.update_purchase(db, blob_store, auction_id, payload, req.uploads)
    return _write_response("Auction purchase updated", result)


@auction_router.delete("/purchase/{auction_id}")
def release_purchase(
    auction_id: int,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    result = auction_service.release_to_inventory(db, blob_store, auction_id)
    return _write_response("Vehicle moved back to dealership inventory", result)


@auction_router.get("/purchases")
def list_purchases(
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    search: str | None = Query(None, max_length=100),
    sort_by: str = "purchase_date",
    sort_order: Literal["asc", "desc"] = "asc",
    status: AuctionStatus | None = None,
    db: Session = Depends(get_db),
):
    data = auction_service.list_purchases(
        db,
        limit=limit,
        page=page,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        status=status.value if status else None,
    )
    return {"status": "success", "data": data}


@auction_router.get("/summary")
def summary(
    date_from: date = date(1900, 1, 1),
    date_to: date | None = None,
    status: AuctionStatus | None = None,
    db: Session = Depends(get_db),
):
    stats = auction_service.summary_statistics(
        db, date_from, date_to or date.today(), status.value if status else None
    )
    return {"status": "success", "data": stats}
