"""Initial schema: lookups, vehicles, associations, images, auction purchases, services.

Revision ID: 0001
Revises: None
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "vehicle_makes",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "vehicle_models",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("make_id", sa.Integer(), sa.ForeignKey("vehicle_makes.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("make_id", "name", name="uq_vehicle_models_make_name"),
    )

    op.create_table(
        "vehicle_tags",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
    )

    op.create_table(
        "vehicle_features",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
    )

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("make_id", sa.Integer(), sa.ForeignKey("vehicle_makes.id"), nullable=False),
        sa.Column("model_id", sa.Integer(), sa.ForeignKey("vehicle_models.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("mileage", sa.Integer()),
        sa.Column("vin", sa.String(17), unique=True),
        sa.Column("exterior_color", sa.String(50)),
        sa.Column("interior_color", sa.String(50)),
        sa.Column("transmission", sa.String(20), nullable=False),
        sa.Column("fuel_type", sa.String(20)),
        sa.Column("engine", sa.String(100)),
        sa.Column("body_type", sa.String(20), nullable=False),
        sa.Column("condition", sa.String(30)),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("description", sa.Text()),
        sa.Column("is_featured", sa.Boolean(), default=False),
        sa.Column("carfax_link", sa.Text()),
        sa.Column("stock_number", sa.String(50)),
        sa.Column("location", sa.String(200)),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_vehicles_status", "vehicles", ["status"])
    op.create_index("ix_vehicles_make_model", "vehicles", ["make_id", "model_id"])

    op.create_table(
        "vehicle_tag_mapping",
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("vehicle_tags.id"), primary_key=True),
    )

    op.create_table(
        "vehicle_feature_mapping",
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("feature_id", sa.Integer(), sa.ForeignKey("vehicle_features.id"), primary_key=True),
    )

    op.create_table(
        "vehicle_images",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"),
            unique=True, nullable=False,
        ),
        sa.Column("image_urls", sa.JSON(), nullable=False),
        sa.Column("image_metadata", sa.JSON(), nullable=False),
        sa.Column("primary_image_index", sa.Integer(), default=0),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "auction_vehicles",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"),
            unique=True, nullable=False,
        ),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("purchase_price", sa.Float(), nullable=False),
        sa.Column("additional_costs", sa.Float(), default=0),
        sa.Column("total_investment", sa.Float(), nullable=False),
        sa.Column("list_price", sa.Float()),
        sa.Column("sold_price", sa.Float()),
        sa.Column("status", sa.String(20), nullable=False, server_default="auction"),
        sa.Column("profit", sa.Float()),
        sa.Column("notes", sa.Text()),
        sa.Column("sold_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_auction_purchase_date", "auction_vehicles", ["purchase_date"])
    op.create_index("ix_auction_status_sold_at", "auction_vehicles", ["status", "sold_at"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="SET NULL"), index=True,
        ),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="SET NULL"), index=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("file_url", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(30), nullable=False, index=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.Text()),
        sa.Column("warranty_months", sa.Integer(), default=0),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )


def downgrade() -> None:
    op.drop_table("services")
    op.drop_table("documents")
    op.drop_table("payments")
    op.drop_index("ix_auction_status_sold_at", table_name="auction_vehicles")
    op.drop_index("ix_auction_purchase_date", table_name="auction_vehicles")
    op.drop_table("auction_vehicles")
    op.drop_table("vehicle_images")
    op.drop_table("vehicle_feature_mapping")
    op.drop_table("vehicle_tag_mapping")
    op.drop_index("ix_vehicles_make_model", table_name="vehicles")
    op.drop_index("ix_vehicles_status", table_name="vehicles")
    op.drop_table("vehicles")
    op.drop_table("vehicle_features")
    op.drop_table("vehicle_tags")
    op.drop_table("vehicle_models")
    op.drop_table("vehicle_makes")
