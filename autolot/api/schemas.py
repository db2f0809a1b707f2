"""Request schemas for the write endpoints.

Every write payload is validated here before a transaction is opened, so the
writers only ever see typed, checked data. Update schemas rely on
``model_fields_set``: an omitted field is left alone, an explicit null clears it.
"""

from datetime import date
from typing import Annotated, ClassVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from autolot.config.enums import (
    AuctionStatus, BodyType, FuelType, ServiceCategory, Transmission, VehicleCondition, VehicleStatus,
)

VIN_PATTERN = r"^[A-HJ-NPR-Z0-9]{17}$"

LabelName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


def _max_model_year() -> int:
    return date.today().year + 1


class VehicleCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, str_strip_whitespace=True)

    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    year: int = Field(..., ge=1900)
    price: float = Field(..., gt=0, le=10_000_000)
    mileage: int | None = Field(None, ge=0, le=2_000_000)
    vin: str = Field(..., min_length=17, max_length=17, pattern=VIN_PATTERN)
    exterior_color: str | None = Field(None, max_length=50)
    interior_color: str | None = Field(None, max_length=50)
    transmission: Transmission
    fuel_type: FuelType | None = None
    engine: str | None = Field(None, max_length=100)
    body_type: BodyType
    condition: VehicleCondition | None = None
    status: VehicleStatus = VehicleStatus.AVAILABLE
    description: str | None = Field(None, max_length=5000)
    is_featured: bool = False
    carfax_link: str | None = Field(None, max_length=2048)
    stock_number: str | None = Field(None, max_length=50)
    location: str | None = Field(None, max_length=200)
    tags: list[LabelName] | None = None
    features: list[LabelName] | None = None
    primary_image_index: int = Field(0, ge=0)

    @field_validator("vin", mode="before")
    @classmethod
    def _normalize_vin(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("year")
    @classmethod
    def _check_year(cls, v):
        if v is not None and v > _max_model_year():
            raise ValueError(f"Year must be between 1900 and {_max_model_year()}")
        return v

    @field_validator("carfax_link")
    @classmethod
    def _check_link(cls, v):
        if v is None or v == "":
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("carfax_link must be an absolute http(s) URL")
        return v


class VehicleUpdate(VehicleCreate):
    """Partial update: every field optional; required-on-create fields cannot be nulled."""

    non_nullable: ClassVar[tuple[str, ...]] = (
        "make", "model", "year", "price", "vin", "transmission", "body_type", "status", "is_featured",
    )

    make: str | None = Field(None, min_length=1, max_length=100)
    model: str | None = Field(None, min_length=1, max_length=100)
    year: int | None = Field(None, ge=1900)
    price: float | None = Field(None, gt=0, le=10_000_000)
    vin: str | None = Field(None, min_length=17, max_length=17, pattern=VIN_PATTERN)
    transmission: Transmission | None = None
    body_type: BodyType | None = None
    status: VehicleStatus | None = None
    is_featured: bool | None = None
    primary_image_index: int | None = Field(None, ge=0)
    clear_images: bool = False

    @model_validator(mode="after")
    def _reject_null_required(self):
        nulled = [name for name in self.non_nullable if name in self.model_fields_set and getattr(self, name) is None]
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


# --- Auction purchases ---

AUCTION_FIELDS = (
    "purchase_date", "purchase_price", "additional_costs", "list_price", "sold_price", "notes",
)


class AuctionPurchaseCreate(VehicleCreate):
    """Vehicle fields plus the purchase; vehicle price falls back to list_price."""

    price: float | None = Field(None, gt=0, le=10_000_000)
    status: AuctionStatus = AuctionStatus.AUCTION
    purchase_date: date
    purchase_price: float = Field(..., gt=0, le=10_000_000)
    additional_costs: float = Field(0, ge=0, le=10_000_000)
    list_price: float | None = Field(None, gt=0, le=10_000_000)
    sold_price: float | None = Field(None, ge=0, le=10_000_000)
    notes: str | None = Field(None, max_length=5000)

    @model_validator(mode="after")
    def _default_price(self):
        if self.price is None:
            if self.list_price is None:
                raise ValueError("Either price or list_price is required")
            self.price = self.list_price
        return self


class AuctionPurchaseUpdate(VehicleUpdate):
    non_nullable: ClassVar[tuple[str, ...]] = VehicleUpdate.non_nullable + (
        "purchase_date", "purchase_price", "additional_costs",
    )

    status: AuctionStatus | None = None
    purchase_date: date | None = None
    purchase_price: float | None = Field(None, gt=0, le=10_000_000)
    additional_costs: float | None = Field(None, ge=0, le=10_000_000)
    list_price: float | None = Field(None, gt=0, le=10_000_000)
    sold_price: float | None = Field(None, ge=0, le=10_000_000)
    notes: str | None = Field(None, max_length=5000)


# --- Service catalog ---

class ServiceCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: ServiceCategory
    price: float = Field(..., gt=0, le=1_000_000)
    duration_minutes: int = Field(..., gt=0, le=10_000)
    warranty_months: int = Field(0, ge=0, le=240)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v
