"""
Secret lookup for integration credentials.

Stored credentials may reference a secret instead of carrying the value inline:
``{"accessToken": "secret:simpra_token"}``. References are resolved per hotel.

Priority:
1. Environment variables (HOSPIENT_SECRET_{HOTEL}_{NAME})
2. secrets/ directory (one file per secret)

Example:
    resolve_secret("5f0c...-9a1e", "simpra_token")
    -> looks for env HOSPIENT_SECRET_5F0C..._9A1E_SIMPRA_TOKEN
    -> falls back to secrets/5f0c...-9a1e/simpra_token
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

SECRET_REF_PREFIX = "secret:"


def resolve_secret(hotel_key: str, secret_name: str, secrets_root: str | Path = "secrets") -> str | None:
    """
    Resolve a secret by name for a specific hotel.

    Returns:
        Secret value or None if not found.
    """
    env_key = f"HOSPIENT_SECRET_{_slugify(hotel_key)}_{_slugify(secret_name)}"
    value = os.environ.get(env_key)
    if value:
        return value

    secret_file = Path(secrets_root) / hotel_key / secret_name
    if secret_file.exists():
        return secret_file.read_text(encoding="utf-8").strip()

    logger.warning("Secret not found: %s/%s", hotel_key, secret_name)
    return None


def is_secret_ref(value: object) -> bool:
    return isinstance(value, str) and value.startswith(SECRET_REF_PREFIX)


def _slugify(s: str) -> str:
    """Convert to env-safe format: 5f0c-9a1e -> 5F0C_9A1E."""
    return s.replace("-", "_").replace(".", "_").upper()
