"""
Integration endpoints: trigger syncs and connectivity tests, read the activity log,
receive provider webhooks.

Adapter results are returned as-is. Failures that happen before any work is done
(unknown integration, inactive, lock held, bad signature, ...) become HTTP errors;
a sync run that completed with record failures is a 200 with status "partial"/"failed".
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from hospient.core.store import IntegrationStore, SqlIntegrationStore
from hospient.integrations.errors import (
    ConfigInactive,
    ConfigMalformed,
    ConfigNotFound,
    PersistenceError,
    SyncInProgressError,
    ValidationError,
    WebhookSignatureError,
)
from hospient.integrations.executor import RequestExecutor
from hospient.integrations.lifecycle import (
    activate_integration,
    adapter_for_integration,
    deactivate_integration,
    run_connection_test,
    run_sync,
)
from hospient.integrations.providers import load_provider_catalog

from .schemas import LogListResponse, ProviderResponse, SyncRequest


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/integrations", tags=["integrations"])

_HTTP_STATUS = {
    ConfigNotFound.code: status.HTTP_404_NOT_FOUND,
    ConfigInactive.code: status.HTTP_409_CONFLICT,
    SyncInProgressError.code: status.HTTP_409_CONFLICT,
    ConfigMalformed.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ValidationError.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    WebhookSignatureError.code: status.HTTP_401_UNAUTHORIZED,
    PersistenceError.code: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Codes that mean a sync never started; any other failed run still returns its counts.
_SYNC_NOT_STARTED = {
    ConfigNotFound.code,
    ConfigInactive.code,
    ConfigMalformed.code,
    SyncInProgressError.code,
    PersistenceError.code,
}


def get_store() -> IntegrationStore:
    return SqlIntegrationStore()


def get_executor() -> RequestExecutor:
    return RequestExecutor()


def _raise_for_failure(result: dict, codes: set[str] | None = None) -> None:
    if result.get("success"):
        return
    code = result.get("error_code")
    if codes is not None and code not in codes:
        return
    http_status = _HTTP_STATUS.get(code)
    if http_status is not None:
        raise HTTPException(status_code=http_status, detail=result)


@router.get("/providers", response_model=dict[str, list[ProviderResponse]])
async def list_providers() -> dict[str, list[ProviderResponse]]:
    catalog = load_provider_catalog()
    return {
        integration_type: [ProviderResponse.model_validate(spec.model_dump()) for spec in specs]
        for integration_type, specs in catalog.items()
    }


@router.post("/{integration_id}/sync")
async def sync_integration(
    integration_id: UUID,
    payload: SyncRequest | None = None,
    store: IntegrationStore = Depends(get_store),
    executor: RequestExecutor = Depends(get_executor),
) -> dict:
    payload = payload or SyncRequest()
    result = await run_sync(store, integration_id, payload.sync_type, executor=executor, **payload.params())
    # Results without a run status were rejected before the orchestrator was reached.
    _raise_for_failure(result, _SYNC_NOT_STARTED if "status" in result else None)
    return result


@router.post("/{integration_id}/test")
async def test_integration_endpoint(
    integration_id: UUID,
    store: IntegrationStore = Depends(get_store),
    executor: RequestExecutor = Depends(get_executor),
) -> dict:
    result = await run_connection_test(store, integration_id, executor=executor)
    _raise_for_failure(result, {ConfigNotFound.code, PersistenceError.code})
    return result


@router.post("/{integration_id}/activate")
async def activate_integration_endpoint(
    integration_id: UUID,
    store: IntegrationStore = Depends(get_store),
    executor: RequestExecutor = Depends(get_executor),
) -> dict:
    result = await activate_integration(store, integration_id, executor=executor)
    _raise_for_failure(result, {ConfigNotFound.code, PersistenceError.code})
    return result


@router.post("/{integration_id}/deactivate")
async def deactivate_integration_endpoint(
    integration_id: UUID,
    store: IntegrationStore = Depends(get_store),
) -> dict:
    result = await deactivate_integration(store, integration_id)
    _raise_for_failure(result)
    return result


@router.get("/{integration_id}/logs", response_model=LogListResponse)
async def list_integration_logs(
    integration_id: UUID,
    operation_type: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    store: IntegrationStore = Depends(get_store),
) -> LogListResponse:
    try:
        logs = await store.list_logs(
            integration_id,
            operation_type=operation_type,
            status=status_filter,
            limit=limit,
            offset=offset,
        )
    except PersistenceError as e:
        raise HTTPException(
            status_code=_HTTP_STATUS[e.code],
            detail={"success": False, "error": e.message, "error_code": e.code},
        ) from e
    return LogListResponse(logs=logs, limit=limit, offset=offset)


@router.post("/{integration_id}/webhook")
async def receive_webhook(
    integration_id: UUID,
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
    store: IntegrationStore = Depends(get_store),
) -> dict:
    raw_payload = await request.body()
    try:
        adapter = await adapter_for_integration(store, integration_id)
    except (ConfigNotFound, ValidationError, PersistenceError) as e:
        raise HTTPException(
            status_code=_HTTP_STATUS[e.code],
            detail={"success": False, "error": e.message, "error_code": e.code},
        ) from e

    result = await adapter.handle_webhook(integration_id, raw_payload, x_webhook_signature)
    _raise_for_failure(result)
    return result
