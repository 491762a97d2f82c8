"""
Credential & Config Resolver: turns a stored integration row into a ConnectionProfile.

The resolver is a pure read + decode step. It runs once per adapter call and the
resulting profile is reused for every request of that call. Any problem with the
stored record is raised as a ConfigError before a single outbound request is made.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from hospient.config import Settings, get_settings
from hospient.core.secrets import SECRET_REF_PREFIX, is_secret_ref, resolve_secret
from hospient.core.store import IntegrationSnapshot, IntegrationStore
from hospient.integrations.errors import ConfigInactive, ConfigMalformed, ConfigNotFound
from hospient.integrations.providers import ConnectionTest, get_provider_spec

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS: dict[str, str] = {
    # POS
    "menus": "/api/menus",
    "checks": "/api/checks",
    "categories": "/api/menu-categories",
    # PMS
    "reservations": "/api/reservations",
    "checkins": "/api/checkins",
    "checkouts": "/api/checkouts",
    "requests": "/api/requests",
    "rooms": "/api/rooms",
    "guests": "/api/guests",
    # Guest management
    "feedback": "/api/feedback",
    "chat": "/api/chat",
    "notifications": "/api/notifications",
}


@dataclass
class ConnectionProfile:
    """Decoded, validated view of one integration, ready for outbound calls."""

    integration_id: UUID
    hotel_id: UUID
    integration_type: str
    provider: str
    external_source: str
    status: str
    base_url: str
    endpoints: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict, repr=False)
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)
    connection_test: ConnectionTest = field(default_factory=ConnectionTest)
    webhook_secret: str | None = field(default=None, repr=False)
    timeout_seconds: float = 30.0
    retry_attempts: int = 1
    concurrency: int = 5
    soft_timeout_seconds: float = 300.0

    def endpoint(self, name: str) -> str:
        return self.endpoints.get(name) or DEFAULT_ENDPOINTS[name]

    @property
    def secret_values(self) -> list[str]:
        """Raw credential values, as strings, that must never reach a log row."""
        values = [
            str(v)
            for v in self.credentials.values()
            if isinstance(v, (str, int, float)) and not isinstance(v, bool)
        ]
        if self.webhook_secret:
            values.append(self.webhook_secret)
        auth = self.headers.get("Authorization")
        if auth:
            values.append(auth)
        return [v for v in values if v]


class CredentialResolver:
    def __init__(
        self,
        store: IntegrationStore,
        settings: Settings | None = None,
        secrets_root: str = "secrets",
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.secrets_root = secrets_root

    async def resolve(self, integration_id: UUID, *, allow_inactive: bool = False) -> ConnectionProfile:
        snapshot = await self.store.load_integration(integration_id)
        if snapshot is None:
            raise ConfigNotFound(f"Integration {integration_id} not found")
        if snapshot.status == "inactive" and not allow_inactive:
            raise ConfigInactive(f"Integration {integration_id} is not active")
        profile = build_profile(snapshot, self.settings, secrets_root=self.secrets_root)
        logger.debug("Resolved integration %s (%s/%s)", integration_id, profile.integration_type, profile.provider)
        return profile


def build_profile(
    snapshot: IntegrationSnapshot,
    settings: Settings | None = None,
    secrets_root: str = "secrets",
) -> ConnectionProfile:
    settings = settings or get_settings()
    config = _decode_map(snapshot.config, "config")
    credentials = _decode_map(snapshot.credentials, "credentials")
    credentials = _resolve_secret_refs(credentials, str(snapshot.hotel_id), secrets_root)

    spec = get_provider_spec(snapshot.provider)
    if spec is not None:
        missing = [name for name in spec.required_credentials if not credentials.get(name)]
        if missing:
            raise ConfigMalformed(
                f"Missing required credentials for {snapshot.provider}: {', '.join(missing)}"
            )

    base_url = config.get("base_url") or config.get("baseUrl") or credentials.get("apiUrl")
    if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
        raise ConfigMalformed("Integration has no valid base URL")

    endpoints = config.get("endpoints") or {}
    if not isinstance(endpoints, dict) or not all(isinstance(v, str) for v in endpoints.values()):
        raise ConfigMalformed("config.endpoints must map names to paths")

    if spec is not None:
        connection_test = spec.connection_test
    else:
        test_path = config.get("test_endpoint") or config.get("testEndpoint") or "/health"
        connection_test = ConnectionTest(method="GET", path=str(test_path))

    sync_settings = snapshot.sync_settings if isinstance(snapshot.sync_settings, dict) else {}

    return ConnectionProfile(
        integration_id=snapshot.id,
        hotel_id=snapshot.hotel_id,
        integration_type=snapshot.integration_type,
        provider=snapshot.provider,
        external_source=snapshot.provider_name or snapshot.provider,
        status=snapshot.status,
        base_url=base_url.rstrip("/"),
        endpoints=endpoints,
        headers=_build_headers(snapshot.provider, config, credentials, settings, spec),
        credentials=credentials,
        connection_test=connection_test,
        webhook_secret=snapshot.webhook_secret,
        timeout_seconds=settings.request_timeout_seconds,
        retry_attempts=_retry_attempts(config),
        concurrency=_positive_int(sync_settings.get("concurrency"), settings.sync_concurrency),
        soft_timeout_seconds=float(
            _positive_int(sync_settings.get("soft_timeout_seconds"), settings.sync_soft_timeout_seconds)
        ),
    )


def _decode_map(value: Any, name: str) -> dict[str, Any]:
    if value is None or value == "":
        return {}
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise ConfigMalformed(f"{name} is not valid JSON") from e
    if not isinstance(value, dict):
        raise ConfigMalformed(f"{name} must be a JSON object")
    return value


def _resolve_secret_refs(credentials: dict[str, Any], hotel_key: str, secrets_root: str) -> dict[str, Any]:
    resolved = dict(credentials)
    for key, value in credentials.items():
        if not is_secret_ref(value):
            continue
        secret_name = value[len(SECRET_REF_PREFIX):]
        secret = resolve_secret(hotel_key, secret_name, secrets_root=secrets_root)
        if secret is None:
            raise ConfigMalformed(f"Credential {key} references a missing secret")
        resolved[key] = secret
    return resolved


def _build_headers(provider, config, credentials, settings, spec) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": settings.user_agent,
    }
    extra = config.get("headers") or {}
    if not isinstance(extra, dict):
        raise ConfigMalformed("config.headers must be a JSON object")
    headers.update({str(k): str(v) for k, v in extra.items()})

    if credentials.get("apiKey"):
        headers["X-API-Key"] = str(credentials["apiKey"])

    token = credentials.get("accessToken") or credentials.get("bearerToken")
    if token:
        raw = spec is not None and spec.auth_scheme == "raw"
        headers["Authorization"] = str(token) if raw else f"Bearer {token}"
    elif credentials.get("username") and credentials.get("password"):
        pair = f"{credentials['username']}:{credentials['password']}".encode("utf-8")
        headers["Authorization"] = "Basic " + base64.b64encode(pair).decode("ascii")

    if provider == "simphony_cloud":
        headers["Simphony-OrgShortName"] = str(credentials.get("companyCode") or "PRO")
        headers["Simphony-LocRef"] = str(credentials.get("locationRef"))
        headers["Simphony-RvcRef"] = str(config.get("rvc_ref") or "1")
    elif provider == "opera_cloud":
        headers["X-App-Key"] = str(credentials.get("appKey"))

    return headers


def _retry_attempts(config: dict[str, Any]) -> int:
    retry = config.get("retry") or {}
    if not isinstance(retry, dict):
        raise ConfigMalformed("config.retry must be a JSON object")
    attempts = retry.get("max_attempts", 1)
    if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 1:
        raise ConfigMalformed("config.retry.max_attempts must be a positive integer")
    return attempts


def _positive_int(value: Any, default):
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return value
    return default
