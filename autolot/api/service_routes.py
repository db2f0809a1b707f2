"""Service catalog endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from autolot.api.schemas import ServiceCreate
from autolot.api.uploads import WriteRequest, get_blob_store, service_write_request
from autolot.database.db import get_db
from autolot.services import service_catalog
from autolot.services.blob_store import BlobStore

service_router = APIRouter(prefix="/services", tags=["services"])


@service_router.post("", status_code=201)
def create_service(
    req: WriteRequest = Depends(service_write_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    payload = ServiceCreate.model_validate_json(req.raw)
    image = req.uploads[0] if req.uploads else None
    service = service_catalog.create_service(db, blob_store, payload, image)
    return {"status": "success", "message": "Service created", "data": service}


@service_router.get("")
def list_services(category: str | None = None, db: Session = Depends(get_db)):
    return {"status": "success", "data": service_catalog.list_services(db, category)}
