from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from hospient.models import Guest, Integration, IntegrationLog, MenuItem, Room

ENTITY_MODELS: dict[str, type] = {
    "menu_item": MenuItem,
    "guest": Guest,
    "room": Room,
}

_JSON_COLUMNS = {"allergens", "nutritional_info", "tags", "preferences"}


async def get_integration(db: AsyncSession, integration_id: UUID) -> Integration | None:
    result = await db.execute(select(Integration).where(Integration.id == integration_id))
    return result.scalar_one_or_none()


async def find_external_row(
    db: AsyncSession,
    entity: str,
    hotel_id: UUID,
    external_id: str,
    external_source: str,
):
    model = ENTITY_MODELS[entity]
    result = await db.execute(
        select(model).where(
            model.hotel_id == hotel_id,
            model.external_id == external_id,
            model.external_source == external_source,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_external_row(
    db: AsyncSession,
    entity: str,
    hotel_id: UUID,
    external_id: str,
    external_source: str,
    defaults: dict | None = None,
):
    """Return an existing row for the external key or create a new one. Returns (row, is_new)."""
    row = await find_external_row(db, entity, hotel_id, external_id, external_source)
    if row:
        return row, False

    row = ENTITY_MODELS[entity](
        hotel_id=hotel_id,
        external_id=external_id,
        external_source=external_source,
        **(defaults or {}),
    )
    db.add(row)
    await db.flush()
    return row, True


async def upsert_external_row(
    db: AsyncSession,
    entity: str,
    hotel_id: UUID,
    external_id: str,
    external_source: str,
    values: dict,
    create_missing: bool = True,
) -> tuple[object | None, bool]:
    """Locate a row by (hotel, external_id, external_source) and update it in place, or create it."""
    if not create_missing:
        row = await find_external_row(db, entity, hotel_id, external_id, external_source)
        if row is None:
            return None, False
        is_new = False
    else:
        row, is_new = await get_or_create_external_row(
            db, entity, hotel_id, external_id, external_source, defaults=values
        )
    if not is_new:
        for key, value in values.items():
            setattr(row, key, value)
            if key in _JSON_COLUMNS:
                flag_modified(row, key)
        await db.flush()
    return row, is_new


async def add_integration_log(db: AsyncSession, integration_id: UUID, **fields) -> IntegrationLog:
    metadata = fields.pop("metadata", None)
    log = IntegrationLog(integration_id=integration_id, metadata_=metadata, **fields)
    db.add(log)
    await db.flush()
    return log


async def list_integration_logs(
    db: AsyncSession,
    integration_id: UUID,
    operation_type: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[IntegrationLog]:
    query = select(IntegrationLog).where(IntegrationLog.integration_id == integration_id)
    if operation_type:
        query = query.where(IntegrationLog.operation_type == operation_type)
    if status:
        query = query.where(IntegrationLog.status == status)
    result = await db.execute(
        query.order_by(IntegrationLog.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())
