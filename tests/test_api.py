from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hospient.api.v1.integrations import get_executor, get_store
from hospient.integrations.errors import PersistenceError
from hospient.integrations.webhooks import calculate_signature
from hospient.main import app

from conftest import Recorder, mock_executor


@pytest.fixture
def recorder() -> Recorder:
    return Recorder(
        {
            ("GET", "/health"): httpx.Response(200, json={}),
            ("GET", "/api/menus"): httpx.Response(200, json=[{"id": "m1", "name": "Soup"}, {"id": "m2"}]),
        }
    )


@pytest_asyncio.fixture
async def client(store, recorder):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_executor] = lambda: mock_executor(recorder)
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_list_providers(client):
    resp = await client.get("/api/v1/integrations/providers")

    assert resp.status_code == 200
    data = resp.json()
    assert [p["value"] for p in data["pos"]] == ["simphony_cloud", "simpra"]
    assert [p["value"] for p in data["pms"]] == ["opera_cloud", "simpra_pms"]
    assert data["guest_management"] == []
    simpra = data["pos"][1]
    assert {c["name"] for c in simpra["credentials"]} == {"apiUrl", "accessToken"}


@pytest.mark.asyncio
async def test_sync_partial_run_returns_200(client, store):
    integration = store.add_integration()

    resp = await client.post(f"/api/v1/integrations/{integration.id}/sync", json={"sync_type": "menus"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "partial"
    assert body["succeeded"] == 1
    assert body["failed"] == 1


@pytest.mark.asyncio
async def test_sync_without_body_uses_default_type(client, store):
    integration = store.add_integration()

    resp = await client.post(f"/api/v1/integrations/{integration.id}/sync")

    assert resp.status_code == 200
    assert store.logs[0]["operation_name"] == "sync_menus"


@pytest.mark.asyncio
async def test_sync_unknown_integration_is_404(client):
    resp = await client.post(f"/api/v1/integrations/{uuid4()}/sync")

    assert resp.status_code == 404
    assert resp.json()["detail"]["error_code"] == "INTEGRATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_sync_inactive_is_409(client, store):
    integration = store.add_integration(status="inactive")

    resp = await client.post(f"/api/v1/integrations/{integration.id}/sync")

    assert resp.status_code == 409
    assert resp.json()["detail"]["error_code"] == "INTEGRATION_INACTIVE"


@pytest.mark.asyncio
async def test_sync_lock_held_is_409(client, store):
    integration = store.add_integration(
        run_token=uuid4(), sync_started_at=datetime.now(timezone.utc), sync_status="in_progress"
    )

    resp = await client.post(f"/api/v1/integrations/{integration.id}/sync")

    assert resp.status_code == 409
    assert resp.json()["detail"]["error_code"] == "SYNC_IN_PROGRESS"


@pytest.mark.asyncio
async def test_sync_type_mismatch_is_422(client, store):
    integration = store.add_integration()

    resp = await client.post(f"/api/v1/integrations/{integration.id}/sync", json={"sync_type": "rooms"})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_test_endpoint(client, store):
    integration = store.add_integration(status="testing")

    resp = await client.post(f"/api/v1/integrations/{integration.id}/test")

    assert resp.status_code == 200
    assert resp.json()["menu_count"] == 2


@pytest.mark.asyncio
async def test_activate_and_deactivate(client, store):
    integration = store.add_integration(status="inactive")

    activated = await client.post(f"/api/v1/integrations/{integration.id}/activate")
    deactivated = await client.post(f"/api/v1/integrations/{integration.id}/deactivate")
    missing = await client.post(f"/api/v1/integrations/{uuid4()}/deactivate")

    assert activated.json()["status"] == "active"
    assert deactivated.json() == {"success": True, "status": "inactive"}
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_logs_endpoint_filters(client, store):
    integration = store.add_integration()
    await client.post(f"/api/v1/integrations/{integration.id}/test")
    await client.post(f"/api/v1/integrations/{integration.id}/sync")

    resp = await client.get(f"/api/v1/integrations/{integration.id}/logs", params={"operation_type": "sync"})
    limited = await client.get(f"/api/v1/integrations/{integration.id}/logs", params={"limit": 1})
    invalid = await client.get(f"/api/v1/integrations/{integration.id}/logs", params={"limit": 500})

    assert resp.status_code == 200
    logs = resp.json()["logs"]
    assert [log["operation_type"] for log in logs] == ["sync"]
    assert logs[0]["records_failed"] == 1
    assert len(limited.json()["logs"]) == 1
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_webhook_endpoint(client, store):
    secret = "whsec-api-123456"
    integration = store.add_integration(webhook_secret=secret)
    payload = b'{"event": "check.closed"}'

    ok = await client.post(
        f"/api/v1/integrations/{integration.id}/webhook",
        content=payload,
        headers={"X-Webhook-Signature": "sha256=" + calculate_signature(secret, payload)},
    )
    bad = await client.post(
        f"/api/v1/integrations/{integration.id}/webhook",
        content=payload,
        headers={"X-Webhook-Signature": "sha256=bad"},
    )

    assert ok.status_code == 200
    assert ok.json() == {"success": True, "event": "check.closed"}
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_logs_endpoint_storage_down_is_503(client, store):
    store.list_logs = AsyncMock(side_effect=PersistenceError("Failed to list integration logs"))

    resp = await client.get(f"/api/v1/integrations/{uuid4()}/logs")

    assert resp.status_code == 503
    assert resp.json()["detail"]["error_code"] == "PERSISTENCE_ERROR"
