"""
Base Integration Adapter: shared plumbing for POS, PMS and guest-management adapters.

To add a new integration type:
1. Create a module in hospient/integrations/ (e.g., pos.py)
2. Subclass IntegrationAdapter and list its public operations in ``actions``
3. Decorate the class with @register_adapter("<integration_type>")

Every public adapter operation returns a dict with at least {"success": bool} and
never raises: failures come back as {"success": False, "error": ..., "error_code": ...}.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from abc import ABC
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from hospient.config import Settings, get_settings
from hospient.core.store import IntegrationStore
from hospient.integrations.activity import ActivityLogger, Outcome
from hospient.integrations.errors import (
    ConfigMalformed,
    ConfigNotFound,
    IntegrationError,
    TransportRejected,
    ValidationError,
    WebhookSignatureError,
)
from hospient.integrations.executor import RequestExecutor
from hospient.integrations.orchestrator import SyncOrchestrator, SyncPlan
from hospient.integrations.resolver import ConnectionProfile, CredentialResolver
from hospient.integrations.webhooks import verify_signature

logger = logging.getLogger(__name__)

Fetch = Callable[[ConnectionProfile], Awaitable[Any]]


class IntegrationAdapter(ABC):
    """Base class for integration adapters."""

    # Integration type identifier ("pos", "pms", "guest_management").
    integration_type: str = ""

    # Public operations reachable through execute().
    actions: tuple[str, ...] = ()

    def __init__(
        self,
        store: IntegrationStore,
        executor: RequestExecutor | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.executor = executor or RequestExecutor()
        self.resolver = CredentialResolver(store, self.settings)
        self.activity = ActivityLogger(store)
        self.orchestrator = SyncOrchestrator(store, self.resolver, self.activity, self.settings)

    async def execute(self, action: str, params: dict) -> dict:
        """
        Execute an integration action by name.

        Args:
            action: Operation name (e.g., "sync_menus", "post_check_in")
            params: Keyword arguments for the operation, including integration_id

        Returns:
            Result dict with at least {"success": bool}
        """
        if action not in self.actions:
            return {"success": False, "error": f"Unknown action: {action}", "error_code": "UNKNOWN_ACTION"}

        handler = getattr(self, action)
        try:
            inspect.signature(handler).bind(**params)
        except TypeError as e:
            return {
                "success": False,
                "error": f"Invalid parameters for {action}: {e}",
                "error_code": ValidationError.code,
            }

        return await handler(**params)

    # --- Connectivity test ---

    def test_steps(self) -> list[tuple[str, str, Fetch]]:
        """Read-only fetches run after the connection check: (status_key, count_key, fetch)."""
        return []

    async def test_integration(self, integration_id: UUID) -> dict:
        """Check connectivity and read access without mutating any local or integration state."""
        started = time.monotonic()
        steps: list[dict] = []
        profile: ConnectionProfile | None = None
        result: dict[str, Any] = {"success": True}
        step_name = "resolve"
        try:
            profile = await self.resolver.resolve(integration_id, allow_inactive=True)

            step_name = "connection"
            check = await self.executor.execute(profile.connection_test.method, profile.connection_test.path, profile)
            steps.append({"step": step_name, "status": "success", "status_code": check.status_code})
            result["connection"] = "OK"

            for status_key, count_key, fetch in self.test_steps():
                step_name = status_key
                data = await fetch(profile)
                if not isinstance(data, list):
                    raise ValidationError(f"Invalid response format for {status_key}: expected a list")
                steps.append({"step": step_name, "status": "success", "count": len(data)})
                result[status_key] = "OK"
                result[count_key] = len(data)
        except IntegrationError as e:
            steps.append({"step": step_name, "status": "failed", "error_code": e.code})
            await self._log_failure(
                integration_id, "test", "test_integration", "outbound", e, started, profile, metadata={"steps": steps}
            )
            return _failure(e)
        except Exception as e:
            logger.exception("Unexpected error testing integration %s", integration_id)
            err = IntegrationError(f"Unexpected error: {e.__class__.__name__}")
            steps.append({"step": step_name, "status": "failed", "error_code": err.code})
            await self._log_failure(
                integration_id, "test", "test_integration", "outbound", err, started, profile, metadata={"steps": steps}
            )
            return _failure(err)

        await self.activity.record(
            integration_id,
            "test",
            "test_integration",
            "outbound",
            Outcome(
                status="success",
                request_data={
                    "method": profile.connection_test.method,
                    "path": profile.connection_test.path,
                },
                response_data=result,
                processing_time=_elapsed_ms(started),
                metadata={"steps": steps},
            ),
            secrets=profile.secret_values,
        )
        return result

    # --- Webhooks ---

    async def handle_webhook(self, integration_id: UUID, raw_payload: bytes, signature: str | None) -> dict:
        """Verify an inbound webhook's HMAC-SHA256 signature and record it."""
        started = time.monotonic()
        profile: ConnectionProfile | None = None
        try:
            profile = await self.resolver.resolve(integration_id)
            if not profile.webhook_secret:
                raise ConfigMalformed("Integration has no webhook secret configured")
            if not verify_signature(profile.webhook_secret, raw_payload, signature):
                raise WebhookSignatureError()
            try:
                payload = json.loads(raw_payload or b"null")
            except ValueError as e:
                raise ValidationError("Webhook payload is not valid JSON") from e
        except IntegrationError as e:
            logger.warning("Rejected webhook for integration %s: %s", integration_id, e.code)
            await self._log_failure(integration_id, "webhook", "webhook_received", "inbound", e, started, profile)
            return _failure(e)

        event = None
        if isinstance(payload, dict):
            event = payload.get("event") or payload.get("type")

        await self.activity.record(
            integration_id,
            "webhook",
            "webhook_received",
            "inbound",
            Outcome(
                status="success",
                request_data=payload,
                processing_time=_elapsed_ms(started),
                metadata={"event": event, "size": len(raw_payload or b"")},
            ),
            secrets=profile.secret_values,
        )
        return {"success": True, "event": event}

    # --- Helpers for subclasses ---

    async def _sync(self, integration_id: UUID, plan: SyncPlan) -> dict:
        try:
            return await self.orchestrator.run(integration_id, plan)
        except Exception as e:
            logger.exception("Unexpected error in %s for integration %s", plan.operation_name, integration_id)
            return _failure(IntegrationError(f"Unexpected error: {e.__class__.__name__}"))

    async def _fetch_list(self, profile: ConnectionProfile, endpoint: str, params: dict | None = None) -> Any:
        result = await self.executor.execute("GET", profile.endpoint(endpoint), profile, params=params)
        return result.data

    async def _call(
        self,
        integration_id: UUID,
        operation_name: str,
        method: str,
        path: Callable[[ConnectionProfile], str],
        *,
        build_body: Callable[[], Any] | None = None,
        params: dict | None = None,
        build_params: Callable[[], dict] | None = None,
        shape: Callable[[Any], dict] | None = None,
    ) -> dict:
        """
        Run one single-shot outbound call: validate, resolve, call once, log once.

        The outbound payload is built (and validated) before anything else, so invalid
        input never reaches the third party.
        """
        started = time.monotonic()
        profile: ConnectionProfile | None = None
        request_data: dict[str, Any] | None = None
        try:
            body = build_body() if build_body else None
            if build_params:
                params = build_params()
            profile = await self.resolver.resolve(integration_id)
            full_path = path(profile)
            request_data = {"method": method, "path": full_path, "body": body, "params": params}
            result = await self.executor.execute(method, full_path, profile, body=body, params=params)
            response = shape(result.data) if shape else {"success": True, "response": result.data}
        except IntegrationError as e:
            await self._log_failure(
                integration_id, "api_call", operation_name, "outbound", e, started, profile, request_data=request_data
            )
            return _failure(e)
        except Exception as e:
            logger.exception("Unexpected error in %s for integration %s", operation_name, integration_id)
            err = IntegrationError(f"Unexpected error: {e.__class__.__name__}")
            await self._log_failure(
                integration_id, "api_call", operation_name, "outbound", err, started, profile, request_data=request_data
            )
            return _failure(err)

        await self.activity.record(
            integration_id,
            "api_call",
            operation_name,
            "outbound",
            Outcome(
                status="success",
                request_data=request_data,
                response_data=result.data,
                processing_time=_elapsed_ms(started),
                metadata={"status_code": result.status_code},
            ),
            secrets=profile.secret_values,
        )
        return response

    async def _log_failure(
        self,
        integration_id: UUID,
        operation_type: str,
        operation_name: str,
        direction: str,
        error: IntegrationError,
        started: float,
        profile: ConnectionProfile | None,
        request_data: dict | None = None,
        metadata: dict | None = None,
    ) -> None:
        if isinstance(error, ConfigNotFound):
            # No integration row to attach a log to.
            logger.warning("%s: %s", operation_name, error)
            return
        await self.activity.record(
            integration_id,
            operation_type,
            operation_name,
            direction,
            Outcome(
                status="failed",
                request_data=request_data,
                response_data=error.body if isinstance(error, TransportRejected) else None,
                error_message=error.message,
                error_code=error.code,
                processing_time=_elapsed_ms(started),
                metadata=metadata,
            ),
            secrets=profile.secret_values if profile else (),
        )


# --- Adapter Registry ---

# Map of integration_type -> adapter class.
# Populated by register_adapter() when adapter modules are imported.
ADAPTER_REGISTRY: dict[str, type[IntegrationAdapter]] = {}


def register_adapter(integration_type: str):
    """Decorator to register an integration adapter class."""

    def decorator(cls: type[IntegrationAdapter]):
        cls.integration_type = integration_type
        ADAPTER_REGISTRY[integration_type] = cls
        return cls

    return decorator


def get_adapter(
    integration_type: str,
    store: IntegrationStore,
    executor: RequestExecutor | None = None,
    settings: Settings | None = None,
) -> IntegrationAdapter:
    """
    Factory: create an adapter by integration type.

    Raises:
        ValueError: If integration_type is not registered.
    """
    cls = ADAPTER_REGISTRY.get(integration_type)
    if cls is None:
        available = ", ".join(ADAPTER_REGISTRY.keys()) or "(none)"
        raise ValueError(f"Unknown integration type: '{integration_type}'. Available: {available}")
    return cls(store, executor=executor, settings=settings)


def entity_id(data: Any) -> Any:
    return data.get("id") if isinstance(data, dict) else None


def _failure(error: IntegrationError) -> dict:
    result: dict[str, Any] = {"success": False, "error": error.message, "error_code": error.code}
    if isinstance(error, TransportRejected):
        result["status_code"] = error.status
    return result


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))
