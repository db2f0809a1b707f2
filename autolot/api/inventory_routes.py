"""Dealership inventory endpoints: vehicle CRUD and the filtered listing."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from autolot.api.schemas import VehicleCreate, VehicleUpdate
from autolot.api.uploads import WriteRequest, cleanup_meta, get_blob_store, vehicle_write_request
from autolot.database.db import get_db
from autolot.services import inventory_service
from autolot.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


# --- Endpoints ---

@inventory_router.post("/vehicle", status_code=201)
def create_vehicle(
    req: WriteRequest = Depends(vehicle_write_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Add a vehicle with its tags, features and images in one transaction."""
    payload = VehicleCreate.model_validate_json(req.raw)
    result = inventory_service.create_vehicle(db, blob_store, payload, req.uploads)
    return {
        "status": "success",
        "message": "Vehicle added to inventory",
        "vehicle_id": result.vehicle_id,
        "meta": cleanup_meta(result.cleanup),
    }


@inventory_router.get("/vehicles")
def list_vehicles(
    category: str = Query("all", max_length=50),
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    search: str | None = Query(None, max_length=100),
    sort_by: str = "date_added",
    sort_order: Literal["asc", "desc"] = "desc",
    status: str | None = Query(None, max_length=20),
    db: Session = Depends(get_db),
):
    data = inventory_service.list_inventory(
        db,
        category=category.lower(),
        limit=limit,
        page=page,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        status=status,
    )
    return {"status": "success", "data": data}


@inventory_router.get("/vehicle/{vehicle_id}")
def get_vehicle(vehicle_id: int, db: Session = Depends(get_db)):
    return {"status": "success", "data": inventory_service.get_vehicle_detail(db, vehicle_id)}


@inventory_router.put("/vehicle/{vehicle_id}")
def update_vehicle(
    vehicle_id: int,
    req: WriteRequest = Depends(vehicle_write_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Partial update. Supplied tags/features/images replace the existing set."""
    payload = VehicleUpdate.model_validate_json(req.raw)
    result = inventory_service.update_vehicle(db, blob_store, vehicle_id, payload, req.uploads)
    return {
        "status": "success",
        "message": "Vehicle updated",
        "vehicle_id": result.vehicle_id,
        "meta": cleanup_meta(result.cleanup),
    }


@inventory_router.delete("/vehicle/{vehicle_id}")
def delete_vehicle(
    vehicle_id: int,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    result = inventory_service.delete_vehicle(db, blob_store, vehicle_id)
    if result.cleanup_failures:
        logger.warning("Vehicle %s deleted with %d orphaned image(s)", vehicle_id, len(result.cleanup_failures))
    return {
        "status": "success",
        "message": "Vehicle deleted",
        "vehicle_id": result.vehicle_id,
        "meta": cleanup_meta(result.cleanup),
    }
