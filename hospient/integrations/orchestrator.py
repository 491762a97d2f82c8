"""
Sync Orchestrator: one idempotent reconciliation pass for one integration.

Run:
1. Resolve the connection profile (once).
2. Take the integration's run lock (compare-and-swap on run_token) and mark it in_progress.
3. Fetch the remote collection; anything but a list fails the whole run.
4. Transform and upsert every record under a concurrency cap. Record failures are
   counted and never stop the other records; a PersistenceError stops the run.
5. Release the lock with one atomic write of last_sync/sync_status/error_count/last_error.
6. Write exactly one sync log row with the totals.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from hospient.config import Settings, get_settings
from hospient.core.store import IntegrationStore, SyncRecord
from hospient.integrations.activity import ActivityLogger, Outcome
from hospient.integrations.errors import (
    ConfigError,
    ConfigNotFound,
    IntegrationError,
    PersistenceError,
    SyncInProgressError,
    ValidationError,
)
from hospient.integrations.resolver import ConnectionProfile, CredentialResolver

logger = logging.getLogger(__name__)

_MAX_ERROR_SAMPLES = 10


@dataclass
class SyncPlan:
    """What to fetch and how to map each remote record for one sync run."""

    operation_name: str
    fetch: Callable[[ConnectionProfile], Awaitable[Any]]
    transform: Callable[[Any], SyncRecord]
    request_data: dict | None = None
    direction: str = "inbound"


@dataclass
class _RunCounts:
    remote_total: int = 0
    succeeded: int = 0
    failed: int = 0
    created: int = 0
    errors: list[dict] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    @property
    def abandoned(self) -> int:
        return max(0, self.remote_total - self.processed)

    def note_failure(self, raw: Any, error: Exception) -> None:
        self.failed += 1
        if len(self.errors) < _MAX_ERROR_SAMPLES:
            self.errors.append(
                {
                    "external_id": str(raw.get("id")) if isinstance(raw, dict) and raw.get("id") is not None else None,
                    "code": getattr(error, "code", "INTERNAL_ERROR"),
                    "message": str(error),
                }
            )


class SyncOrchestrator:
    def __init__(
        self,
        store: IntegrationStore,
        resolver: CredentialResolver,
        activity: ActivityLogger,
        settings: Settings | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.activity = activity
        self.settings = settings or get_settings()

    async def run(self, integration_id: UUID, plan: SyncPlan) -> dict:
        started = time.monotonic()
        started_at = datetime.now(timezone.utc)

        try:
            profile = await self.resolver.resolve(integration_id)
        except (ConfigError, PersistenceError) as e:
            logger.warning("Sync %s for integration %s not started: %s", plan.operation_name, integration_id, e)
            if isinstance(e, ConfigError) and not isinstance(e, ConfigNotFound):
                await self._record_failure_safely(integration_id, e.message)
            if not isinstance(e, ConfigNotFound):
                await self._log_run(integration_id, plan, _RunCounts(), "failed", started, error=e)
            return _result(_RunCounts(), "failed", started, error=e)

        run_token = uuid4()
        stale_before = started_at - timedelta(seconds=self.settings.stale_sync_timeout_seconds)
        try:
            acquired = await self.store.begin_sync(integration_id, run_token, started_at, stale_before)
        except PersistenceError as e:
            logger.error("Could not take sync lock for integration %s: %s", integration_id, e)
            await self._log_run(integration_id, plan, _RunCounts(), "failed", started, error=e, profile=profile)
            return _result(_RunCounts(), "failed", started, error=e)

        if not acquired:
            e = SyncInProgressError(f"Integration {integration_id} already has a sync in progress")
            logger.info("%s", e)
            await self._log_run(integration_id, plan, _RunCounts(), "failed", started, error=e, profile=profile)
            return _result(_RunCounts(), "failed", started, error=e)

        counts = _RunCounts()
        error: IntegrationError | None = None
        try:
            raw_records = await plan.fetch(profile)
            if not isinstance(raw_records, list):
                raise ValidationError("Invalid response format from remote: expected a list of records")
            counts.remote_total = len(raw_records)
            await self._reconcile(profile, plan, raw_records, counts)
        except IntegrationError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected error in sync %s for integration %s", plan.operation_name, integration_id)
            error = IntegrationError(f"Unexpected error: {e.__class__.__name__}")
        finally:
            succeeded = error is None and counts.failed == 0 and counts.abandoned == 0
            try:
                await self.store.finish_sync(
                    integration_id,
                    run_token,
                    succeeded=succeeded,
                    last_sync=started_at,
                    error=None if succeeded else _summarize_error(error, counts),
                )
            except PersistenceError as e:
                logger.error("Could not release sync lock for integration %s: %s", integration_id, e)

        if succeeded:
            status = "success"
        elif counts.succeeded > 0:
            status = "partial"
        else:
            status = "failed"

        logger.info(
            "Sync %s for integration %s: %s (processed=%d ok=%d failed=%d abandoned=%d)",
            plan.operation_name,
            integration_id,
            status,
            counts.processed,
            counts.succeeded,
            counts.failed,
            counts.abandoned,
        )
        await self._log_run(integration_id, plan, counts, status, started, error=error, profile=profile)
        return _result(counts, status, started, error=error)

    async def _reconcile(
        self,
        profile: ConnectionProfile,
        plan: SyncPlan,
        raw_records: list,
        counts: _RunCounts,
    ) -> None:
        if not raw_records:
            return

        semaphore = asyncio.Semaphore(max(1, int(profile.concurrency)))
        abort = asyncio.Event()
        abort_errors: list[PersistenceError] = []

        async def _worker(raw: Any) -> None:
            async with semaphore:
                if abort.is_set():
                    return
                try:
                    record = plan.transform(raw)
                    created = await self.store.apply_record(profile.hotel_id, profile.external_source, record)
                except PersistenceError as e:
                    counts.note_failure(raw, e)
                    abort_errors.append(e)
                    abort.set()
                    return
                except IntegrationError as e:
                    counts.note_failure(raw, e)
                    return
                except Exception as e:
                    logger.exception("Unexpected error applying record in %s", plan.operation_name)
                    counts.note_failure(raw, e)
                    return
                counts.succeeded += 1
                if created:
                    counts.created += 1

        tasks = [asyncio.create_task(_worker(raw)) for raw in raw_records]
        _, pending = await asyncio.wait(tasks, timeout=profile.soft_timeout_seconds)
        if pending:
            logger.warning(
                "Sync %s for integration %s hit the soft timeout; abandoning %d records",
                plan.operation_name,
                profile.integration_id,
                len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if abort_errors:
            raise abort_errors[0]

    async def _record_failure_safely(self, integration_id: UUID, message: str) -> None:
        try:
            await self.store.record_sync_failure(integration_id, message)
        except PersistenceError as e:
            logger.error("Could not record sync failure for integration %s: %s", integration_id, e)

    async def _log_run(
        self,
        integration_id: UUID,
        plan: SyncPlan,
        counts: _RunCounts,
        status: str,
        started: float,
        error: Exception | None = None,
        profile: ConnectionProfile | None = None,
    ) -> None:
        metadata: dict[str, Any] = {
            "remote_total": counts.remote_total,
            "abandoned": counts.abandoned,
            "created": counts.created,
        }
        if counts.errors:
            metadata["errors"] = counts.errors

        error_message = _summarize_error(error, counts) if status != "success" else None
        error_code = getattr(error, "code", None)
        if error_code is None and counts.errors:
            error_code = counts.errors[0]["code"]

        await self.activity.record(
            integration_id,
            "sync",
            plan.operation_name,
            plan.direction,
            Outcome(
                status=status,
                request_data=plan.request_data,
                error_message=error_message,
                error_code=error_code,
                processing_time=_elapsed_ms(started),
                records_processed=counts.processed,
                records_success=counts.succeeded,
                records_failed=counts.failed,
                metadata=metadata,
            ),
            secrets=profile.secret_values if profile else (),
        )


def _summarize_error(error: Exception | None, counts: _RunCounts) -> str:
    if error is not None:
        return str(error)
    parts = []
    if counts.failed:
        parts.append(f"{counts.failed} of {counts.processed} records failed")
    if counts.abandoned:
        parts.append(f"{counts.abandoned} records abandoned after the soft timeout")
    return "; ".join(parts) or "Sync failed"


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


def _result(counts: _RunCounts, status: str, started: float, error: Exception | None = None) -> dict:
    result = {
        "success": status == "success",
        "status": status,
        "processed": counts.processed,
        "succeeded": counts.succeeded,
        "failed": counts.failed,
        "abandoned": counts.abandoned,
        "processing_time": _elapsed_ms(started),
    }
    if status != "success":
        result["error"] = _summarize_error(error, counts)
        result["error_code"] = getattr(error, "code", None) or (
            counts.errors[0]["code"] if counts.errors else "SYNC_FAILED"
        )
    return result
