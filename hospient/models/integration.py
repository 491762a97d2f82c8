from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hospient.models.base import Base, CreatedAtMixin, TimestampMixin, UUIDMixin


class Integration(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("hotel_id", "integration_type", name="uq_integrations_hotel_type"),
        Index("ix_integrations_hotel_id", "hotel_id"),
    )

    hotel_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    integration_type: Mapped[str] = mapped_column(String(32), nullable=False)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="inactive", nullable=False)

    # Stored either as JSON objects or as JSON text; decoded by the resolver.
    config: Mapped[dict | str] = mapped_column(JSONB, default=dict, nullable=False)
    credentials: Mapped[dict | str] = mapped_column(JSONB, default=dict, nullable=False)
    sync_settings: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)

    webhook_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)

    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sync_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    run_token: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    logs: Mapped[list["IntegrationLog"]] = relationship(
        back_populates="integration",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class IntegrationLog(UUIDMixin, CreatedAtMixin, Base):
    """Append-only audit row, one per terminal adapter operation."""

    __tablename__ = "integration_logs"
    __table_args__ = (
        CheckConstraint(
            "processing_time >= 0 AND records_processed >= 0 AND records_success >= 0 AND records_failed >= 0",
            name="ck_integration_logs_non_negative",
        ),
        Index("ix_integration_logs_integration_id", "integration_id"),
        Index("ix_integration_logs_created_at", "created_at"),
    )

    integration_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("integrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    operation_type: Mapped[str] = mapped_column(String(16), nullable=False)
    operation_name: Mapped[str] = mapped_column(String(128), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    request_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    response_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    processing_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_success: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    integration: Mapped["Integration"] = relationship(back_populates="logs")
