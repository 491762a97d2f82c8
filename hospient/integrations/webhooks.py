"""Inbound webhook signature checks (HMAC-SHA256 over the raw request body)."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def calculate_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    """Constant-time check of a hex signature, with or without the ``sha256=`` prefix."""
    if not secret or not signature:
        return False
    provided = signature.strip()
    if provided.lower().startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]
    expected = calculate_signature(secret, payload)
    return hmac.compare_digest(provided.lower().encode("ascii", "ignore"), expected.encode("ascii"))
