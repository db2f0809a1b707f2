from datetime import datetime, date
from sqlalchemy import (
    JSON, String, Float, Integer, Boolean, DateTime, Date, Text, Index, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# --- Lookup tables (lookup-or-create, never updated or deleted by writes) ---

class VehicleMake(Base):
    __tablename__ = "vehicle_makes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class VehicleModel(Base):
    """Model name scoped under its make."""
    __tablename__ = "vehicle_models"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    make_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicle_makes.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("make_id", "name", name="uq_vehicle_models_make_name"),
    )


class VehicleTag(Base):
    __tablename__ = "vehicle_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class VehicleFeature(Base):
    __tablename__ = "vehicle_features"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


# --- Vehicles ---

class Vehicle(Base):
    """Dealership inventory vehicle."""
    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    make_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicle_makes.id"), nullable=False)
    model_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicle_models.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    mileage: Mapped[int | None] = mapped_column(Integer)
    vin: Mapped[str | None] = mapped_column(String(17), unique=True)
    exterior_color: Mapped[str | None] = mapped_column(String(50))
    interior_color: Mapped[str | None] = mapped_column(String(50))
    transmission: Mapped[str] = mapped_column(String(20), nullable=False)
    fuel_type: Mapped[str | None] = mapped_column(String(20))
    engine: Mapped[str | None] = mapped_column(String(100))
    body_type: Mapped[str] = mapped_column(String(20), nullable=False)
    condition: Mapped[str | None] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(20), default="available", nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    carfax_link: Mapped[str | None] = mapped_column(Text)
    stock_number: Mapped[str | None] = mapped_column(String(50))
    location: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("ix_vehicles_status", "status"),
        Index("ix_vehicles_make_model", "make_id", "model_id"),
    )


class VehicleTagMapping(Base):
    __tablename__ = "vehicle_tag_mapping"

    vehicle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicle_tags.id"), primary_key=True)


class VehicleFeatureMapping(Base):
    __tablename__ = "vehicle_feature_mapping"

    vehicle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), primary_key=True
    )
    feature_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicle_features.id"), primary_key=True)


class VehicleImageSet(Base):
    """All images for one vehicle. Replaced as a whole, never merged."""
    __tablename__ = "vehicle_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    image_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    image_metadata: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    primary_image_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# --- Auction purchases ---

class AuctionPurchase(Base):
    """Auction acquisition linked 1:1 to a vehicle."""
    __tablename__ = "auction_vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    purchase_price: Mapped[float] = mapped_column(Float, nullable=False)
    additional_costs: Mapped[float] = mapped_column(Float, default=0)
    total_investment: Mapped[float] = mapped_column(Float, nullable=False)
    list_price: Mapped[float | None] = mapped_column(Float)
    sold_price: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default="auction", nullable=False)
    profit: Mapped[float | None] = mapped_column(Float)
    notes: Mapped[str | None] = mapped_column(Text)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("ix_auction_purchase_date", "purchase_date"),
        Index("ix_auction_status_sold_at", "status", "sold_at"),
    )


# --- Records that outlive a deleted vehicle (vehicle reference set to NULL) ---

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    file_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# --- Service catalog ---

class ServiceOffering(Base):
    """Service catalog entry (maintenance, repair, detailing...)."""
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(30), index=True, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text)
    warranty_months: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
