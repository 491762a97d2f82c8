from __future__ import annotations

from uuid import uuid4

import pytest

from hospient.integrations.activity import MASK, ActivityLogger, Outcome, redact


def test_redact_masks_sensitive_keys():
    data = {
        "headers": {"Authorization": "Bearer abc", "X-API-Key": "k", "Accept": "application/json"},
        "access_token": "t",
        "apiUserPassword": "p",
        "name": "Burger",
    }
    out = redact(data)

    assert out["headers"]["Authorization"] == MASK
    assert out["headers"]["X-API-Key"] == MASK
    assert out["headers"]["Accept"] == "application/json"
    assert out["access_token"] == MASK
    assert out["apiUserPassword"] == MASK
    assert out["name"] == "Burger"
    assert data["access_token"] == "t"


def test_redact_masks_raw_secret_values_anywhere():
    data = {"error": "auth failed for tok-123456", "items": ["tok-123456", 5]}
    out = redact(data, ["tok-123456"])

    assert out["error"] == f"auth failed for {MASK}"
    assert out["items"] == [MASK, 5]


def test_redact_masks_numeric_and_short_credentials():
    data = {"Simphony-LocRef": "98765", "loc": 98765, "org": "ZQX", "count": 3, "ok": True}
    out = redact(data, ["98765", "ZQX"])

    assert out == {"Simphony-LocRef": MASK, "loc": MASK, "org": MASK, "count": 3, "ok": True}


def test_redact_keeps_empty_sensitive_values():
    assert redact({"token": None, "password": ""}) == {"token": None, "password": ""}


@pytest.mark.asyncio
async def test_record_appends_redacted_entry(store):
    integration_id = uuid4()
    logger = ActivityLogger(store)

    ok = await logger.record(
        integration_id,
        "api_call",
        "post_guest_check",
        "outbound",
        Outcome(
            status="failed",
            request_data={"headers": {"Authorization": "Bearer tok-123456"}},
            error_message="rejected tok-123456",
            error_code="REMOTE_REJECTED",
            processing_time=-5,
        ),
        secrets=["tok-123456"],
    )

    assert ok is True
    [entry] = store.logs
    assert entry["integration_id"] == integration_id
    assert entry["request_data"]["headers"]["Authorization"] == MASK
    assert entry["error_message"] == f"rejected {MASK}"
    assert entry["processing_time"] == 0
    assert entry["records_processed"] == 0


@pytest.mark.asyncio
async def test_record_failure_never_raises(store, caplog):
    store.fail_logs = True

    ok = await ActivityLogger(store).record(uuid4(), "sync", "sync_menus", "inbound", Outcome(status="success"))

    assert ok is False
    assert store.logs == []
    assert "Failed to write integration log" in caplog.text
