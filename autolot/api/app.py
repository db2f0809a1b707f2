import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from autolot.api.auction_routes import auction_router
from autolot.api.inventory_routes import inventory_router
from autolot.api.service_routes import service_router
from autolot.config.settings import Settings, get_settings
from autolot.database.db import Database
from autolot.services.blob_store import BlobStore, build_blob_store
from autolot.services.errors import AutoLotError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "code": code, "message": message},
    )


def _validation_message(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AutoLotError)
    def handle_autolot_error(request: Request, exc: AutoLotError):
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error(400, "VALIDATION_ERROR", _validation_message(exc.errors()))

    @app.exception_handler(PydanticValidationError)
    def handle_payload_validation(request: Request, exc: PydanticValidationError):
        return _error(400, "VALIDATION_ERROR", _validation_message(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    def handle_http_error(request: Request, exc: StarletteHTTPException):
        codes = {400: "VALIDATION_ERROR", 404: "NOT_FOUND"}
        code = codes.get(exc.status_code, "HTTP_ERROR")
        return _error(exc.status_code, code, str(exc.detail))


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    blob_store: BlobStore | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.validate_production()
        if settings.uses_sqlite:
            app.state.database.create_all()  # Deployed envs use: alembic upgrade head
        yield
        app.state.database.dispose()

    # Disable Swagger/ReDoc in production
    docs_kwargs = {}
    if settings.is_production:
        docs_kwargs = {"docs_url": None, "redoc_url": None}

    app = FastAPI(
        title="AutoLot API",
        description="Dealership inventory, auction purchases and service catalog",
        version=VERSION,
        lifespan=lifespan,
        **docs_kwargs,
    )
    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)
    app.state.blob_store = blob_store or build_blob_store(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_error_handlers(app)

    app.include_router(inventory_router, prefix="/api/v1")
    app.include_router(auction_router, prefix="/api/v1")
    app.include_router(service_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    def health_check():
        return {"status": "ok", "version": VERSION}

    return app
