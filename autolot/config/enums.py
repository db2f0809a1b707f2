"""Enumerated column values shared by the models, schemas, and queries."""

from enum import Enum


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    PENDING = "pending"
    MAINTENANCE = "maintenance"
    AUCTION = "auction"


class AuctionStatus(str, Enum):
    AUCTION = "auction"
    SOLD = "sold"


class VehicleCondition(str, Enum):
    NEW = "new"
    USED = "used"
    CERTIFIED_PRE_OWNED = "certified_pre_owned"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"


class FuelType(str, Enum):
    GASOLINE = "gasoline"
    DIESEL = "diesel"
    ELECTRIC = "electric"
    HYBRID = "hybrid"
    PLUG_IN_HYBRID = "plug_in_hybrid"


class Transmission(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    CVT = "cvt"
    SEMI_AUTOMATIC = "semi_automatic"


class BodyType(str, Enum):
    SEDAN = "sedan"
    SUV = "suv"
    TRUCK = "truck"
    COUPE = "coupe"
    CONVERTIBLE = "convertible"
    HATCHBACK = "hatchback"
    MINIVAN = "minivan"
    VAN = "van"
    WAGON = "wagon"


class ServiceCategory(str, Enum):
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    INSPECTION = "inspection"
    DETAILING = "detailing"
    TIRE_SERVICE = "tire_service"


# Inventory listing: tag-backed categories alongside body types and "electric"
TAG_CATEGORIES = ("luxury", "compact")

# Image uploads: extension -> expected MIME type
IMAGE_EXTENSION_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
