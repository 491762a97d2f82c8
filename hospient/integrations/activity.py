"""
Activity Logger: one integration_logs row per terminal adapter operation.

Payload snapshots are redacted before they are stored: values under sensitive keys
and any occurrence of a raw credential value are replaced by a mask. A failure to
write the row is reported on the logging channel and never reaches the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from hospient.core.store import IntegrationStore

logger = logging.getLogger(__name__)

MASK = "••••••"

_SENSITIVE_KEY_PARTS = ("authorization", "apikey", "appkey", "token", "password", "secret", "signature")


@dataclass
class Outcome:
    status: str
    request_data: Any = None
    response_data: Any = None
    error_message: str | None = None
    error_code: str | None = None
    processing_time: int = 0
    records_processed: int = 0
    records_success: int = 0
    records_failed: int = 0
    metadata: dict | None = None


class ActivityLogger:
    def __init__(self, store: IntegrationStore):
        self.store = store

    async def record(
        self,
        integration_id: UUID,
        operation_type: str,
        operation_name: str,
        direction: str,
        outcome: Outcome,
        secrets: Iterable[str] = (),
    ) -> bool:
        """Append one log row. Returns False when the row could not be stored."""
        secrets = sorted({s for s in secrets if s}, key=len, reverse=True)
        entry = {
            "operation_type": operation_type,
            "operation_name": operation_name,
            "direction": direction,
            "status": outcome.status,
            "request_data": redact(outcome.request_data, secrets),
            "response_data": redact(outcome.response_data, secrets),
            "error_message": redact(outcome.error_message, secrets),
            "error_code": outcome.error_code,
            "processing_time": max(0, int(outcome.processing_time or 0)),
            "records_processed": max(0, outcome.records_processed),
            "records_success": max(0, outcome.records_success),
            "records_failed": max(0, outcome.records_failed),
            "metadata": redact(outcome.metadata, secrets),
        }
        try:
            await self.store.append_log(integration_id, entry)
        except Exception:
            logger.exception(
                "Failed to write integration log for %s (%s/%s)",
                integration_id,
                operation_type,
                operation_name,
            )
            return False
        return True


def redact(value: Any, secrets: Iterable[str] = ()) -> Any:
    """Return a copy of value with sensitive keys and raw credential values masked."""
    if isinstance(value, dict):
        return {
            k: (MASK if _is_sensitive_key(k) and v not in (None, "") else redact(v, secrets))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v, secrets) for v in value]
    if isinstance(value, str):
        for secret in secrets:
            if secret in value:
                value = value.replace(secret, MASK)
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool) and str(value) in secrets:
        return MASK
    return value


def _is_sensitive_key(key: Any) -> bool:
    normalized = str(key).lower().replace("-", "").replace("_", "")
    return any(part in normalized for part in _SENSITIVE_KEY_PARTS)
