from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from hospient.core import crud
from hospient.core.store import SqlIntegrationStore, SyncRecord
from hospient.integrations.errors import PersistenceError, ValidationError
from hospient.models import IntegrationLog, MenuItem


class _FakeResult:
    def __init__(self, value=None, rows=()):
        self.value = value
        self.rows = list(rows)

    def scalar_one_or_none(self):
        return self.value

    def scalars(self):
        return self

    def all(self):
        return self.rows


class _FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


class _FakeSession:
    def __init__(self, factory: "_FakeSessionFactory"):
        self.factory = factory

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    def begin(self):
        return _FakeTransaction()

    async def execute(self, stmt, *_args, **_kwargs):
        self.factory.statements.append(stmt)
        if self.factory.error is not None:
            raise self.factory.error
        if self.factory.results:
            return self.factory.results.pop(0)
        return _FakeResult()

    def add(self, obj):
        self.factory.added.append(obj)

    async def flush(self):
        if self.factory.error is not None:
            raise self.factory.error

    async def commit(self):
        self.factory.commits += 1


class _FakeSessionFactory:
    def __init__(self, results=(), error: Exception | None = None):
        self.results = list(results)
        self.error = error
        self.statements: list = []
        self.added: list = []
        self.commits = 0

    def __call__(self):
        return _FakeSession(self)


def _sql(stmt) -> tuple[str, dict]:
    compiled = stmt.compile(dialect=postgresql.dialect())
    return " ".join(str(compiled).split()), compiled.params


def _db_down() -> OperationalError:
    return OperationalError("UPDATE integrations", {}, ConnectionRefusedError("connection refused"))


def _duplicate_key() -> IntegrityError:
    return IntegrityError("INSERT INTO menu_items", {}, Exception("duplicate key value"))


@pytest.mark.asyncio
async def test_begin_sync_takes_free_or_stale_lock_in_one_statement():
    integration_id, token = uuid4(), uuid4()
    started = datetime.now(timezone.utc)
    stale_before = started - timedelta(minutes=15)
    factory = _FakeSessionFactory(results=[_FakeResult(value=integration_id)])

    taken = await SqlIntegrationStore(factory).begin_sync(integration_id, token, started, stale_before)

    assert taken is True
    assert factory.commits == 1
    [stmt] = factory.statements
    sql, params = _sql(stmt)
    assert sql.startswith("UPDATE integrations SET")
    assert "integrations.run_token IS NULL OR integrations.sync_started_at <" in sql
    assert "RETURNING integrations.id" in sql
    assert params["run_token"] == token
    assert params["sync_started_at"] == started
    assert params["sync_status"] == "in_progress"
    assert stale_before in params.values()
    assert integration_id in params.values()


@pytest.mark.asyncio
async def test_begin_sync_reports_live_lock():
    factory = _FakeSessionFactory(results=[_FakeResult(value=None)])
    now = datetime.now(timezone.utc)

    taken = await SqlIntegrationStore(factory).begin_sync(uuid4(), uuid4(), now, now - timedelta(minutes=15))

    assert taken is False


@pytest.mark.asyncio
async def test_finish_sync_success_writes_all_status_fields_guarded_by_token():
    integration_id, token = uuid4(), uuid4()
    finished = datetime.now(timezone.utc)
    factory = _FakeSessionFactory(results=[_FakeResult(value=integration_id)])

    released = await SqlIntegrationStore(factory).finish_sync(integration_id, token, True, finished)

    assert released is True
    [stmt] = factory.statements
    sql, params = _sql(stmt)
    assert "integrations.run_token = " in sql
    assert "integrations.id = " in sql
    assert token in params.values()
    assert params["sync_status"] == "success"
    assert params["error_count"] == 0
    assert params["last_error"] is None
    assert params["last_sync"] == finished
    assert params["run_token"] is None
    assert params["sync_started_at"] is None


@pytest.mark.asyncio
async def test_finish_sync_failure_increments_error_count_in_sql():
    factory = _FakeSessionFactory(results=[_FakeResult(value=uuid4())])

    await SqlIntegrationStore(factory).finish_sync(uuid4(), uuid4(), False, datetime.now(timezone.utc), "remote down")

    sql, params = _sql(factory.statements[0])
    assert "error_count=(integrations.error_count + " in sql
    assert params["sync_status"] == "failed"
    assert params["last_error"] == "remote down"


@pytest.mark.asyncio
async def test_finish_sync_after_takeover_is_reported(caplog):
    factory = _FakeSessionFactory(results=[_FakeResult(value=None)])

    with caplog.at_level(logging.WARNING, logger="hospient.core.store"):
        released = await SqlIntegrationStore(factory).finish_sync(
            uuid4(), uuid4(), True, datetime.now(timezone.utc)
        )

    assert released is False
    assert "taken over" in caplog.text


@pytest.mark.asyncio
async def test_record_sync_failure_skips_locked_rows():
    factory = _FakeSessionFactory()

    await SqlIntegrationStore(factory).record_sync_failure(uuid4(), "bad config")

    sql, params = _sql(factory.statements[0])
    assert "integrations.run_token IS NULL" in sql
    assert " OR " not in sql
    assert "error_count=(integrations.error_count + " in sql
    assert params["last_error"] == "bad config"


@pytest.mark.asyncio
async def test_recover_stale_syncs_counts_released_rows():
    factory = _FakeSessionFactory(results=[_FakeResult(rows=[uuid4(), uuid4()])])
    stale_before = datetime.now(timezone.utc) - timedelta(minutes=15)

    recovered = await SqlIntegrationStore(factory).recover_stale_syncs(stale_before)

    assert recovered == 2
    assert factory.commits == 1
    sql, params = _sql(factory.statements[0])
    assert "integrations.run_token IS NOT NULL" in sql
    assert stale_before in params.values()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.load_integration(uuid4()),
        lambda s: s.begin_sync(uuid4(), uuid4(), datetime.now(timezone.utc), datetime.now(timezone.utc)),
        lambda s: s.finish_sync(uuid4(), uuid4(), True, datetime.now(timezone.utc)),
        lambda s: s.set_status(uuid4(), "active"),
        lambda s: s.recover_stale_syncs(datetime.now(timezone.utc)),
        lambda s: s.list_logs(uuid4()),
        lambda s: s.append_log(uuid4(), {"operation_type": "sync", "status": "success"}),
    ],
)
async def test_connection_failures_become_persistence_errors(call):
    store = SqlIntegrationStore(_FakeSessionFactory(error=_db_down()))

    with pytest.raises(PersistenceError):
        await call(store)


@pytest.mark.asyncio
async def test_list_logs_returns_plain_dicts():
    integration_id = uuid4()
    log = IntegrationLog(
        id=uuid4(),
        integration_id=integration_id,
        operation_type="sync",
        operation_name="sync_menus",
        direction="inbound",
        status="success",
        records_processed=2,
        metadata_={"created": 2},
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    factory = _FakeSessionFactory(results=[_FakeResult(rows=[log])])

    [row] = await SqlIntegrationStore(factory).list_logs(integration_id, operation_type="sync", limit=5)

    assert row["integration_id"] == str(integration_id)
    assert row["metadata"] == {"created": 2}
    assert row["created_at"] == "2026-01-01T00:00:00+00:00"
    sql, _ = _sql(factory.statements[0])
    assert "ORDER BY integration_logs.created_at DESC" in sql


@pytest.mark.asyncio
async def test_apply_record_retries_once_after_key_conflict():
    record = SyncRecord(entity="menu_item", external_id="m1", values={"name": "Soup"})
    upsert = AsyncMock(side_effect=[_duplicate_key(), (object(), False)])

    with patch("hospient.core.store.crud.upsert_external_row", new=upsert):
        created = await SqlIntegrationStore(_FakeSessionFactory()).apply_record(uuid4(), "Simpra", record)

    assert created is False
    assert upsert.await_count == 2


@pytest.mark.asyncio
async def test_apply_record_repeated_conflict_is_validation_error():
    record = SyncRecord(entity="menu_item", external_id="m1", values={"name": "Soup"})
    upsert = AsyncMock(side_effect=[_duplicate_key(), _duplicate_key()])

    with patch("hospient.core.store.crud.upsert_external_row", new=upsert):
        with pytest.raises(ValidationError):
            await SqlIntegrationStore(_FakeSessionFactory()).apply_record(uuid4(), "Simpra", record)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (DataError("INSERT INTO menu_items", {}, Exception("value too long")), ValidationError),
        (OperationalError("INSERT INTO menu_items", {}, Exception("server closed")), PersistenceError),
    ],
)
async def test_apply_record_translates_database_errors(error, expected):
    record = SyncRecord(entity="menu_item", external_id="m1", values={"name": "Soup"})

    with patch("hospient.core.store.crud.upsert_external_row", new=AsyncMock(side_effect=error)):
        with pytest.raises(expected):
            await SqlIntegrationStore(_FakeSessionFactory()).apply_record(uuid4(), "Simpra", record)


@pytest.mark.asyncio
async def test_apply_record_writes_related_rows_with_their_create_flag():
    room = SyncRecord(entity="room", external_id="204", values={"is_occupied": True}, create=False)
    record = SyncRecord(entity="guest", external_id="g1", values={"first_name": "Ana"}, related=[room])
    upsert = AsyncMock(side_effect=[(object(), True), (None, False)])
    hotel_id = uuid4()

    with patch("hospient.core.store.crud.upsert_external_row", new=upsert):
        created = await SqlIntegrationStore(_FakeSessionFactory()).apply_record(hotel_id, "Opera", record)

    assert created is True
    related_call = upsert.await_args_list[1]
    assert related_call.args[1:5] == ("room", hotel_id, "204", "Opera")
    assert related_call.kwargs["create_missing"] is False


@pytest.mark.asyncio
async def test_upsert_update_only_skips_missing_row():
    factory = _FakeSessionFactory(results=[_FakeResult(value=None)])

    row, created = await crud.upsert_external_row(
        factory(), "room", uuid4(), "204", "Opera", {"is_occupied": True}, create_missing=False
    )

    assert (row, created) == (None, False)
    assert factory.added == []
    sql, params = _sql(factory.statements[0])
    assert "FROM rooms" in sql
    assert "rooms.external_source = " in sql
    assert "Opera" in params.values()


@pytest.mark.asyncio
async def test_upsert_updates_existing_row_in_place():
    existing = MenuItem(hotel_id=uuid4(), external_id="m1", external_source="Simpra", name="Old", allergens=[])
    factory = _FakeSessionFactory(results=[_FakeResult(value=existing)])

    row, created = await crud.upsert_external_row(
        factory(), "menu_item", existing.hotel_id, "m1", "Simpra", {"name": "Soup", "allergens": ["nuts"]}
    )

    assert row is existing
    assert created is False
    assert existing.name == "Soup"
    assert existing.allergens == ["nuts"]
    assert factory.added == []


@pytest.mark.asyncio
async def test_upsert_creates_missing_row():
    factory = _FakeSessionFactory(results=[_FakeResult(value=None)])
    hotel_id = uuid4()

    row, created = await crud.upsert_external_row(
        factory(), "menu_item", hotel_id, "m9", "Simpra", {"name": "Tea", "price": 4}
    )

    assert created is True
    assert factory.added == [row]
    assert (row.hotel_id, row.external_id, row.external_source, row.name) == (hotel_id, "m9", "Simpra", "Tea")
