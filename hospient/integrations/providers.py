"""Provider catalog loaded from providers.yaml."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

CATALOG_PATH = Path(__file__).with_name("providers.yaml")

INTEGRATION_TYPES = ("pos", "pms", "guest_management")


class CredentialField(BaseModel):
    name: str
    label: str
    type: str = "text"
    required: bool = True


class ConnectionTest(BaseModel):
    method: str = "GET"
    path: str = "/health"


class ProviderSpec(BaseModel):
    value: str
    label: str
    integration_type: str = ""
    # "bearer" sends Authorization: Bearer <token>; "raw" sends the token as-is.
    auth_scheme: str = "bearer"
    connection_test: ConnectionTest = Field(default_factory=ConnectionTest)
    credentials: list[CredentialField] = Field(default_factory=list)

    @property
    def required_credentials(self) -> list[str]:
        return [c.name for c in self.credentials if c.required]


@lru_cache(maxsize=1)
def load_provider_catalog(path: str | Path = CATALOG_PATH) -> dict[str, list[ProviderSpec]]:
    data = _load_yaml(Path(path))
    catalog: dict[str, list[ProviderSpec]] = {}
    for integration_type in INTEGRATION_TYPES:
        entries = data.get(integration_type) or []
        catalog[integration_type] = [
            ProviderSpec(integration_type=integration_type, **entry) for entry in entries
        ]
    return catalog


def get_provider_spec(provider: str) -> ProviderSpec | None:
    """Return the catalog entry for a provider, or None for generic integrations."""
    for specs in load_provider_catalog().values():
        for spec in specs:
            if spec.value == provider:
                return spec
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
