"""Composes lookup ids and scalar attributes into a vehicle row."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from autolot.database.models import Vehicle, VehicleModel
from autolot.services.errors import ConflictError, NotFoundError
from autolot.services.lookup_service import resolve_make, resolve_model

# Scalar columns a write payload may set directly
SCALAR_FIELDS = (
    "year", "price", "mileage", "vin", "exterior_color", "interior_color",
    "transmission", "fuel_type", "engine", "body_type", "condition", "status",
    "description", "is_featured", "carfax_link", "stock_number", "location",
)


def get_vehicle_or_404(db: Session, vehicle_id: int) -> Vehicle:
    vehicle = db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError("Vehicle not found", code="VEHICLE_NOT_FOUND")
    return vehicle


def ensure_vin_available(db: Session, vin: str | None, exclude_id: int | None = None) -> None:
    """Raise ConflictError if another vehicle already carries this VIN."""
    if not vin:
        return
    stmt = select(Vehicle.id).where(Vehicle.vin == vin)
    if exclude_id is not None:
        stmt = stmt.where(Vehicle.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError("A vehicle with this VIN already exists.", code="DUPLICATE_VIN")


def insert_vehicle(db: Session, attrs: dict) -> Vehicle:
    """Insert a vehicle. ``attrs`` must carry make and model names; flushes to assign the id."""
    make_id = resolve_make(db, attrs["make"])
    model_id = resolve_model(db, make_id, attrs["model"])

    fields = {k: attrs[k] for k in SCALAR_FIELDS if attrs.get(k) is not None}
    fields.setdefault("status", "available")
    vehicle = Vehicle(make_id=make_id, model_id=model_id, **fields)
    db.add(vehicle)
    db.flush()
    return vehicle


def update_vehicle(db: Session, vehicle: Vehicle, changes: dict) -> Vehicle:
    """Apply only the keys present in ``changes``; explicit None clears a nullable column.

    A new make re-resolves the current model name under it so the model never
    points at another make.
    """
    if "make" in changes:
        make_id = resolve_make(db, changes["make"])
        model_name = changes.get("model") or _model_name(db, vehicle.model_id)
        vehicle.make_id = make_id
        vehicle.model_id = resolve_model(db, make_id, model_name)
    elif "model" in changes:
        vehicle.model_id = resolve_model(db, vehicle.make_id, changes["model"])

    for key in SCALAR_FIELDS:
        if key in changes:
            setattr(vehicle, key, changes[key])

    vehicle.updated_at = datetime.utcnow()
    db.flush()
    return vehicle


def set_status(db: Session, vehicle_id: int, status: str) -> None:
    vehicle = get_vehicle_or_404(db, vehicle_id)
    vehicle.status = status
    vehicle.updated_at = datetime.utcnow()
    db.flush()


def _model_name(db: Session, model_id: int) -> str:
    return db.execute(select(VehicleModel.name).where(VehicleModel.id == model_id)).scalar_one()
