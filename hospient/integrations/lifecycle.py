"""
Entry points shared by the API, the CLI and the Celery worker.

They look up the integration's type, pick the matching adapter and return the
adapter's result dict unchanged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from hospient.config import Settings, get_settings
from hospient.core.store import IntegrationStore
from hospient.integrations.base import IntegrationAdapter, get_adapter
from hospient.integrations.errors import ConfigNotFound, PersistenceError, ValidationError
from hospient.integrations.executor import RequestExecutor

# Import adapter modules for registration side effects.
import hospient.integrations.guest_management  # noqa: E402,F401
import hospient.integrations.pms  # noqa: E402,F401
import hospient.integrations.pos  # noqa: E402,F401

logger = logging.getLogger(__name__)

# sync_type -> (integration_type, adapter operation)
SYNC_OPERATIONS: dict[str, tuple[str, str]] = {
    "menus": ("pos", "sync_menus"),
    "reservations": ("pms", "sync_reservations"),
    "rooms": ("pms", "sync_rooms"),
    "guest_data": ("guest_management", "sync_guest_data"),
}


async def adapter_for_integration(
    store: IntegrationStore,
    integration_id: UUID,
    executor: RequestExecutor | None = None,
    settings: Settings | None = None,
) -> IntegrationAdapter:
    snapshot = await store.load_integration(integration_id)
    if snapshot is None:
        raise ConfigNotFound(f"Integration {integration_id} not found")
    try:
        return get_adapter(snapshot.integration_type, store, executor=executor, settings=settings)
    except ValueError as e:
        raise ValidationError(str(e), field="integration_type") from e


async def run_sync(
    store: IntegrationStore,
    integration_id: UUID,
    sync_type: str | None = None,
    executor: RequestExecutor | None = None,
    settings: Settings | None = None,
    **params,
) -> dict:
    """Run the sync for an integration. Without sync_type, the default sync of its type runs."""
    try:
        adapter = await adapter_for_integration(store, integration_id, executor, settings)
    except (ConfigNotFound, ValidationError, PersistenceError) as e:
        return {"success": False, "error": e.message, "error_code": e.code}

    if sync_type is None:
        sync_type = next(k for k, (t, _) in SYNC_OPERATIONS.items() if t == adapter.integration_type)

    operation = SYNC_OPERATIONS.get(sync_type)
    if operation is None or operation[0] != adapter.integration_type:
        return {
            "success": False,
            "error": f"Sync type '{sync_type}' is not supported for {adapter.integration_type} integrations",
            "error_code": ValidationError.code,
        }
    return await adapter.execute(operation[1], {"integration_id": integration_id, **params})


async def run_connection_test(
    store: IntegrationStore,
    integration_id: UUID,
    executor: RequestExecutor | None = None,
    settings: Settings | None = None,
) -> dict:
    try:
        adapter = await adapter_for_integration(store, integration_id, executor, settings)
    except (ConfigNotFound, ValidationError, PersistenceError) as e:
        return {"success": False, "error": e.message, "error_code": e.code}
    return await adapter.test_integration(integration_id)


async def activate_integration(
    store: IntegrationStore,
    integration_id: UUID,
    executor: RequestExecutor | None = None,
    settings: Settings | None = None,
) -> dict:
    """Run the connectivity test in 'testing' status, then mark the integration active or error."""
    try:
        adapter = await adapter_for_integration(store, integration_id, executor, settings)
        await store.set_status(integration_id, "testing")
    except (ConfigNotFound, ValidationError, PersistenceError) as e:
        return {"success": False, "error": e.message, "error_code": e.code}

    result = await adapter.test_integration(integration_id)
    status = "active" if result.get("success") else "error"
    try:
        await store.set_status(integration_id, status)
    except PersistenceError as e:
        return {"success": False, "error": e.message, "error_code": e.code}

    logger.info("Integration %s activation finished with status=%s", integration_id, status)
    return {**result, "status": status}


async def deactivate_integration(store: IntegrationStore, integration_id: UUID) -> dict:
    try:
        updated = await store.set_status(integration_id, "inactive")
    except PersistenceError as e:
        return {"success": False, "error": e.message, "error_code": e.code}
    if not updated:
        return {"success": False, "error": f"Integration {integration_id} not found", "error_code": ConfigNotFound.code}
    return {"success": True, "status": "inactive"}


async def recover_stale_syncs(store: IntegrationStore, settings: Settings | None = None) -> int:
    """Fail in_progress runs older than the stale-sync timeout and release their locks."""
    settings = settings or get_settings()
    stale_before = datetime.now(timezone.utc) - timedelta(seconds=settings.stale_sync_timeout_seconds)
    return await store.recover_stale_syncs(stale_before)
