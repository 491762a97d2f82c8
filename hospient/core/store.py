"""
Integration store: the sync engine's only path to the database.

Each method opens its own short-lived session, so concurrent record workers of one
sync run never share a session or a transaction. SQLAlchemy errors are translated
into the integration error taxonomy at this boundary:

- connection-level failures (OperationalError, InterfaceError, OSError) -> PersistenceError
- constraint or data errors (IntegrityError, DataError) -> ValidationError
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hospient.core import crud
from hospient.integrations.errors import PersistenceError, ValidationError
from hospient.models import Integration, IntegrationLog

logger = logging.getLogger(__name__)


@dataclass
class IntegrationSnapshot:
    """Read-only copy of an integrations row, detached from any session."""

    id: UUID
    hotel_id: UUID
    integration_type: str
    provider: str
    status: str
    config: Any = None
    credentials: Any = field(default=None, repr=False)
    provider_name: str | None = None
    provider_version: str | None = None
    sync_settings: dict = field(default_factory=dict)
    webhook_url: str | None = None
    webhook_secret: str | None = field(default=None, repr=False)
    last_sync: datetime | None = None
    sync_status: str | None = None
    sync_started_at: datetime | None = None
    run_token: UUID | None = None
    error_count: int = 0
    last_error: str | None = None


@dataclass
class SyncRecord:
    """
    One transformed remote record, ready to upsert.

    ``related`` rows are written in the same transaction as the main row, e.g. the
    room occupancy carried by a reservation. Records with ``create=False`` only
    update a row that already exists.
    """

    entity: str
    external_id: str
    values: dict
    related: list["SyncRecord"] = field(default_factory=list)
    create: bool = True


class IntegrationStore(ABC):
    """Persistence operations the sync engine depends on."""

    @abstractmethod
    async def load_integration(self, integration_id: UUID) -> IntegrationSnapshot | None: ...

    @abstractmethod
    async def begin_sync(
        self, integration_id: UUID, run_token: UUID, started_at: datetime, stale_before: datetime
    ) -> bool:
        """Take the run lock and mark the integration in_progress. False if a live run holds it."""

    @abstractmethod
    async def finish_sync(
        self,
        integration_id: UUID,
        run_token: UUID,
        succeeded: bool,
        last_sync: datetime,
        error: str | None = None,
    ) -> bool:
        """Release the run lock and write all sync status fields in one statement."""

    @abstractmethod
    async def record_sync_failure(self, integration_id: UUID, error: str) -> None:
        """Mark a run that failed before it could take the lock."""

    @abstractmethod
    async def apply_record(self, hotel_id: UUID, external_source: str, record: SyncRecord) -> bool:
        """Upsert one record in its own transaction. Returns True when a row was created."""

    @abstractmethod
    async def append_log(self, integration_id: UUID, entry: dict) -> None: ...

    @abstractmethod
    async def list_logs(
        self,
        integration_id: UUID,
        operation_type: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]: ...

    @abstractmethod
    async def set_status(self, integration_id: UUID, status: str) -> bool: ...

    @abstractmethod
    async def recover_stale_syncs(self, stale_before: datetime) -> int: ...


class SqlIntegrationStore(IntegrationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from hospient.db import async_session

            session_factory = async_session
        self._session_factory = session_factory

    async def load_integration(self, integration_id: UUID) -> IntegrationSnapshot | None:
        try:
            async with self._session_factory() as db:
                row = await crud.get_integration(db, integration_id)
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to load integration: {e}") from e
        if row is None:
            return None
        return IntegrationSnapshot(
            id=row.id,
            hotel_id=row.hotel_id,
            integration_type=row.integration_type,
            provider=row.provider,
            status=row.status,
            config=row.config,
            credentials=row.credentials,
            provider_name=row.provider_name,
            provider_version=row.provider_version,
            sync_settings=row.sync_settings or {},
            webhook_url=row.webhook_url,
            webhook_secret=row.webhook_secret,
            last_sync=row.last_sync,
            sync_status=row.sync_status,
            sync_started_at=row.sync_started_at,
            run_token=row.run_token,
            error_count=row.error_count,
            last_error=row.last_error,
        )

    async def begin_sync(
        self, integration_id: UUID, run_token: UUID, started_at: datetime, stale_before: datetime
    ) -> bool:
        stmt = (
            update(Integration)
            .where(Integration.id == integration_id)
            .where(or_(Integration.run_token.is_(None), Integration.sync_started_at < stale_before))
            .values(run_token=run_token, sync_started_at=started_at, sync_status="in_progress")
            .returning(Integration.id)
        )
        return await self._execute_update(stmt)

    async def finish_sync(
        self,
        integration_id: UUID,
        run_token: UUID,
        succeeded: bool,
        last_sync: datetime,
        error: str | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "run_token": None,
            "sync_started_at": None,
            "last_sync": last_sync,
        }
        if succeeded:
            values.update(sync_status="success", error_count=0, last_error=None)
        else:
            values.update(
                sync_status="failed",
                error_count=Integration.error_count + 1,
                last_error=error,
            )
        stmt = (
            update(Integration)
            .where(Integration.id == integration_id, Integration.run_token == run_token)
            .values(**values)
            .returning(Integration.id)
        )
        released = await self._execute_update(stmt)
        if not released:
            logger.warning("Sync lock for integration %s was taken over before release", integration_id)
        return released

    async def record_sync_failure(self, integration_id: UUID, error: str) -> None:
        stmt = (
            update(Integration)
            .where(Integration.id == integration_id, Integration.run_token.is_(None))
            .values(
                sync_status="failed",
                error_count=Integration.error_count + 1,
                last_error=error,
            )
            .returning(Integration.id)
        )
        await self._execute_update(stmt)

    async def apply_record(self, hotel_id: UUID, external_source: str, record: SyncRecord) -> bool:
        try:
            return await self._apply_record_once(hotel_id, external_source, record)
        except IntegrityError:
            # A concurrent worker inserted the same external key first; the retry updates it.
            logger.debug("Retrying upsert of %s %s after key conflict", record.entity, record.external_id)
        try:
            return await self._apply_record_once(hotel_id, external_source, record)
        except IntegrityError as e:
            raise ValidationError(f"Rejected by local schema: {e.orig}") from e

    async def _apply_record_once(self, hotel_id: UUID, external_source: str, record: SyncRecord) -> bool:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    _, created = await crud.upsert_external_row(
                        db,
                        record.entity,
                        hotel_id,
                        record.external_id,
                        external_source,
                        record.values,
                        create_missing=record.create,
                    )
                    for related in record.related:
                        await crud.upsert_external_row(
                            db,
                            related.entity,
                            hotel_id,
                            related.external_id,
                            external_source,
                            related.values,
                            create_missing=related.create,
                        )
            return created
        except IntegrityError:
            raise
        except DataError as e:
            raise ValidationError(f"Rejected by local schema: {e.orig}") from e
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Local storage unavailable: {e}") from e

    async def append_log(self, integration_id: UUID, entry: dict) -> None:
        try:
            async with self._session_factory() as db:
                await crud.add_integration_log(db, integration_id, **entry)
                await db.commit()
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to write integration log: {e}") from e

    async def list_logs(
        self,
        integration_id: UUID,
        operation_type: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        try:
            async with self._session_factory() as db:
                rows = await crud.list_integration_logs(
                    db, integration_id, operation_type=operation_type, status=status, limit=limit, offset=offset
                )
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to list integration logs: {e}") from e
        return [log_to_dict(r) for r in rows]

    async def set_status(self, integration_id: UUID, status: str) -> bool:
        stmt = (
            update(Integration)
            .where(Integration.id == integration_id)
            .values(status=status)
            .returning(Integration.id)
        )
        return await self._execute_update(stmt)

    async def recover_stale_syncs(self, stale_before: datetime) -> int:
        stmt = (
            update(Integration)
            .where(Integration.run_token.is_not(None), Integration.sync_started_at < stale_before)
            .values(
                sync_status="failed",
                run_token=None,
                sync_started_at=None,
                error_count=Integration.error_count + 1,
                last_error="Sync run did not finish before the stale-sync timeout",
            )
            .returning(Integration.id)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                recovered = list(result.scalars().all())
                await db.commit()
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to recover stale syncs: {e}") from e
        for integration_id in recovered:
            logger.warning("Recovered stale sync for integration %s", integration_id)
        return len(recovered)

    async def _execute_update(self, stmt) -> bool:
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                matched = result.scalar_one_or_none() is not None
                await db.commit()
        except (OperationalError, InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to update integration: {e}") from e
        return matched


def log_to_dict(log: IntegrationLog) -> dict:
    return {
        "id": str(log.id),
        "integration_id": str(log.integration_id),
        "operation_type": log.operation_type,
        "operation_name": log.operation_name,
        "direction": log.direction,
        "status": log.status,
        "request_data": log.request_data,
        "response_data": log.response_data,
        "error_message": log.error_message,
        "error_code": log.error_code,
        "processing_time": log.processing_time,
        "records_processed": log.records_processed,
        "records_success": log.records_success,
        "records_failed": log.records_failed,
        "metadata": log.metadata_,
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }
