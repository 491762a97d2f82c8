"""
Sync Worker: Celery tasks that run integration syncs for schedulers.

No beat schedule is defined here; deployments schedule `hospient.run_integration_sync`
per integration with whatever cadence the hotel needs.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from hospient.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Keep one asyncio loop per worker process. Creating a new loop for each task
# causes asyncpg/SQLAlchemy "attached to a different loop" errors.
_worker_loop: asyncio.AbstractEventLoop | None = None


def _get_worker_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop
    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_worker_loop)
    return _worker_loop


@celery_app.task(name="hospient.run_integration_sync")
def run_integration_sync_task(integration_id: str, sync_type: str | None = None, params: dict | None = None) -> dict:
    """Celery task entry point. Returns the adapter's result dict."""
    loop = _get_worker_loop()
    return loop.run_until_complete(_run_integration_sync(UUID(integration_id), sync_type, params or {}))


@celery_app.task(name="hospient.recover_stale_syncs")
def recover_stale_syncs_task() -> int:
    loop = _get_worker_loop()
    return loop.run_until_complete(_recover_stale_syncs())


async def _run_integration_sync(integration_id: UUID, sync_type: str | None, params: dict) -> dict:
    from hospient.core.store import SqlIntegrationStore
    from hospient.integrations.lifecycle import run_sync

    result = await run_sync(SqlIntegrationStore(), integration_id, sync_type, **params)
    if result.get("success"):
        logger.info("Sync %s for integration %s finished: %s", sync_type or "default", integration_id, result)
    else:
        logger.warning(
            "Sync %s for integration %s failed: %s (%s)",
            sync_type or "default",
            integration_id,
            result.get("error"),
            result.get("error_code"),
        )
    return result


async def _recover_stale_syncs() -> int:
    from hospient.core.store import SqlIntegrationStore
    from hospient.integrations.lifecycle import recover_stale_syncs

    return await recover_stale_syncs(SqlIntegrationStore())
