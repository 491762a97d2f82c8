from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from uuid import UUID, uuid4

import httpx
import pytest

from hospient.config import Settings
from hospient.core.store import IntegrationSnapshot, IntegrationStore, SyncRecord
from hospient.integrations.executor import RequestExecutor


class FakeStore(IntegrationStore):
    """In-memory IntegrationStore with the same lock and upsert semantics as the SQL one."""

    def __init__(self):
        self.integrations: dict[UUID, IntegrationSnapshot] = {}
        self.rows: dict[tuple, dict] = {}
        self.logs: list[dict] = []
        self.apply_hook = None
        self.fail_logs = False
        self.apply_calls = 0

    def add_integration(self, **overrides) -> IntegrationSnapshot:
        fields = {
            "id": uuid4(),
            "hotel_id": uuid4(),
            "integration_type": "pos",
            "provider": "simpra",
            "provider_name": "Simpra",
            "status": "active",
            "config": {"endpoints": {}},
            "credentials": {"apiUrl": "https://pos.example.com", "accessToken": "tok-live-123456"},
            "sync_settings": {},
        }
        fields.update(overrides)
        snapshot = IntegrationSnapshot(**fields)
        self.integrations[snapshot.id] = snapshot
        return snapshot

    def rows_for(self, entity: str) -> dict[str, dict]:
        return {key[3]: values for key, values in self.rows.items() if key[0] == entity}

    async def load_integration(self, integration_id):
        snapshot = self.integrations.get(integration_id)
        return dataclasses.replace(snapshot) if snapshot else None

    async def begin_sync(self, integration_id, run_token, started_at: datetime, stale_before: datetime) -> bool:
        s = self.integrations.get(integration_id)
        if s is None:
            return False
        if s.run_token is not None and s.sync_started_at is not None and s.sync_started_at >= stale_before:
            return False
        s.run_token = run_token
        s.sync_started_at = started_at
        s.sync_status = "in_progress"
        return True

    async def finish_sync(self, integration_id, run_token, succeeded, last_sync, error=None) -> bool:
        s = self.integrations.get(integration_id)
        if s is None or s.run_token != run_token:
            return False
        s.run_token = None
        s.sync_started_at = None
        s.last_sync = last_sync
        if succeeded:
            s.sync_status = "success"
            s.error_count = 0
            s.last_error = None
        else:
            s.sync_status = "failed"
            s.error_count += 1
            s.last_error = error
        return True

    async def record_sync_failure(self, integration_id, error) -> None:
        s = self.integrations.get(integration_id)
        if s is not None and s.run_token is None:
            s.sync_status = "failed"
            s.error_count += 1
            s.last_error = error

    async def apply_record(self, hotel_id, external_source, record: SyncRecord) -> bool:
        self.apply_calls += 1
        if self.apply_hook is not None:
            await self.apply_hook(record)
        key = (record.entity, hotel_id, external_source, record.external_id)
        created = key not in self.rows
        self.rows[key] = {**self.rows.get(key, {}), **record.values}
        for related in record.related:
            related_key = (related.entity, hotel_id, external_source, related.external_id)
            if related.create or related_key in self.rows:
                self.rows[related_key] = {**self.rows.get(related_key, {}), **related.values}
        return created

    async def append_log(self, integration_id, entry: dict) -> None:
        if self.fail_logs:
            raise RuntimeError("log table unavailable")
        self.logs.append(
            {"id": uuid4(), "integration_id": integration_id, "created_at": datetime.now(timezone.utc), **entry}
        )

    async def list_logs(self, integration_id, operation_type=None, status=None, limit=50, offset=0):
        rows = [
            log
            for log in reversed(self.logs)
            if log["integration_id"] == integration_id
            and (operation_type is None or log["operation_type"] == operation_type)
            and (status is None or log["status"] == status)
        ]
        return rows[offset : offset + limit]

    async def set_status(self, integration_id, status) -> bool:
        s = self.integrations.get(integration_id)
        if s is None:
            return False
        s.status = status
        return True

    async def recover_stale_syncs(self, stale_before) -> int:
        recovered = 0
        for s in self.integrations.values():
            if s.run_token is not None and s.sync_started_at < stale_before:
                s.run_token = None
                s.sync_started_at = None
                s.sync_status = "failed"
                s.error_count += 1
                recovered += 1
        return recovered


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        request_timeout_seconds=30.0,
        sync_concurrency=5,
        sync_soft_timeout_seconds=300.0,
        stale_sync_timeout_seconds=900.0,
    )


def mock_executor(handler) -> RequestExecutor:
    """RequestExecutor whose outbound calls are answered by handler(request)."""
    return RequestExecutor(transport=httpx.MockTransport(handler))


class Recorder:
    """Collects outbound requests and answers them from a {(method, path): response} table."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | Exception]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(answer, Exception):
            raise answer
        return answer
