from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    sync_type: Literal["menus", "reservations", "rooms", "guest_data"] | None = None
    start_date: str | None = None
    end_date: str | None = None
    guest_id: str | None = None

    def params(self) -> dict:
        return self.model_dump(exclude={"sync_type"}, exclude_none=True)


class IntegrationLogResponse(BaseModel):
    id: UUID
    integration_id: UUID
    operation_type: str
    operation_name: str
    direction: str
    status: str
    request_data: dict | list | None = None
    response_data: dict | list | str | None = None
    error_message: str | None = None
    error_code: str | None = None
    processing_time: int = 0
    records_processed: int = 0
    records_success: int = 0
    records_failed: int = 0
    metadata: dict | None = None
    created_at: datetime | None = None


class LogListResponse(BaseModel):
    logs: list[IntegrationLogResponse] = Field(default_factory=list)
    limit: int
    offset: int


class CredentialFieldResponse(BaseModel):
    name: str
    label: str
    type: str
    required: bool


class ProviderResponse(BaseModel):
    value: str
    label: str
    credentials: list[CredentialFieldResponse] = Field(default_factory=list)
