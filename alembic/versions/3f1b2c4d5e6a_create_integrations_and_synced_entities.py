"""create integrations, integration logs and synced entities

Revision ID: 3f1b2c4d5e6a
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


revision: str = "3f1b2c4d5e6a"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _jsonb(name: str, default: str | None = "'{}'::jsonb") -> sa.Column:
    if default is None:
        return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), nullable=True)
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        server_default=sa.text(default),
        nullable=False,
    )


def _external_key() -> list[sa.Column]:
    return [
        sa.Column("hotel_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("external_source", sa.String(length=255), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "integrations",
        _id(),
        sa.Column("hotel_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("integration_type", sa.String(length=32), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=False),
        sa.Column("provider_name", sa.String(length=255), nullable=True),
        sa.Column("provider_version", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'inactive'"), nullable=False),
        _jsonb("config"),
        _jsonb("credentials"),
        _jsonb("sync_settings"),
        sa.Column("webhook_url", sa.String(length=512), nullable=True),
        sa.Column("webhook_secret", sa.String(length=255), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_status", sa.String(length=16), nullable=True),
        sa.Column("sync_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("run_token", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("error_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("hotel_id", "integration_type", name="uq_integrations_hotel_type"),
    )
    op.create_index("ix_integrations_hotel_id", "integrations", ["hotel_id"], unique=False)

    op.create_table(
        "integration_logs",
        _id(),
        sa.Column(
            "integration_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("integrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("operation_type", sa.String(length=16), nullable=False),
        sa.Column("operation_name", sa.String(length=128), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        _jsonb("request_data", default=None),
        _jsonb("response_data", default=None),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("processing_time", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("records_processed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("records_success", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("records_failed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _jsonb("metadata", default=None),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "processing_time >= 0 AND records_processed >= 0 AND records_success >= 0 AND records_failed >= 0",
            name="ck_integration_logs_non_negative",
        ),
    )
    op.create_index("ix_integration_logs_integration_id", "integration_logs", ["integration_id"], unique=False)
    op.create_index("ix_integration_logs_created_at", "integration_logs", ["created_at"], unique=False)

    op.create_table(
        "menu_items",
        _id(),
        *_external_key(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), server_default=sa.text("'main'"), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("currency", sa.String(length=3), server_default=sa.text("'USD'"), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        _jsonb("allergens", default="'[]'::jsonb"),
        _jsonb("nutritional_info"),
        sa.Column("preparation_time", sa.Integer(), nullable=True),
        _jsonb("tags", default="'[]'::jsonb"),
        *_timestamps(),
        sa.UniqueConstraint("hotel_id", "external_id", "external_source", name="uq_menu_items_external"),
    )

    op.create_table(
        "guests",
        _id(),
        *_external_key(),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("city", sa.String(length=128), nullable=True),
        sa.Column("country", sa.String(length=128), nullable=True),
        sa.Column("passport_number", sa.String(length=64), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        _jsonb("preferences"),
        sa.Column("loyalty_points", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'active'"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("hotel_id", "external_id", "external_source", name="uq_guests_external"),
    )

    op.create_table(
        "rooms",
        _id(),
        *_external_key(),
        sa.Column("room_number", sa.String(length=32), nullable=False),
        sa.Column("room_type", sa.String(length=64), nullable=True),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), server_default=sa.text("'available'"), nullable=False),
        sa.Column("is_occupied", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("hotel_id", "external_id", "external_source", name="uq_rooms_external"),
    )


def downgrade() -> None:
    op.drop_table("rooms")
    op.drop_table("guests")
    op.drop_table("menu_items")
    op.drop_index("ix_integration_logs_created_at", table_name="integration_logs")
    op.drop_index("ix_integration_logs_integration_id", table_name="integration_logs")
    op.drop_table("integration_logs")
    op.drop_index("ix_integrations_hotel_id", table_name="integrations")
    op.drop_table("integrations")
