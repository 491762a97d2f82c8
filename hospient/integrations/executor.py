"""
Request Executor: outbound HTTP to third-party platforms.

One short-lived httpx client per call: no connection pool is shared between
integrations of different hotels. Each exchange is bounded by the profile's timeout
(30 seconds by default) on connect/read and, as a whole, by an outer deadline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from hospient.integrations.errors import TransportRejected, TransportUnreachable
from hospient.integrations.resolver import ConnectionProfile

logger = logging.getLogger(__name__)


@dataclass
class HttpResult:
    status_code: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    elapsed_ms: int = 0


class RequestExecutor:
    """Stateless; safe to share between concurrent adapter calls."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def execute(
        self,
        method: str,
        path: str,
        profile: ConnectionProfile,
        body: Any = None,
        params: dict | None = None,
    ) -> HttpResult:
        if profile.retry_attempts <= 1:
            return await self._send(method, path, profile, body, params)

        # Only unreachable remotes are retried.
        retrying = AsyncRetrying(
            stop=stop_after_attempt(profile.retry_attempts),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type(TransportUnreachable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(method, path, profile, body, params)
        raise TransportUnreachable(f"{method} {path} failed")  # pragma: no cover

    async def _send(
        self,
        method: str,
        path: str,
        profile: ConnectionProfile,
        body: Any,
        params: dict | None,
    ) -> HttpResult:
        url = build_url(profile.base_url, path)
        started = time.monotonic()

        async def _exchange() -> httpx.Response:
            async with httpx.AsyncClient(timeout=profile.timeout_seconds, transport=self._transport) as client:
                return await client.request(
                    method.upper(),
                    url,
                    headers=profile.headers,
                    json=body,
                    params=_clean_params(params),
                )

        try:
            response = await asyncio.wait_for(_exchange(), timeout=profile.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("%s %s timed out for integration %s", method.upper(), path, profile.integration_id)
            raise TransportUnreachable(
                f"{method.upper()} {path} timed out after {profile.timeout_seconds:g}s"
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                "%s %s unreachable for integration %s: %s",
                method.upper(),
                path,
                profile.integration_id,
                e.__class__.__name__,
            )
            raise TransportUnreachable(f"{method.upper()} {path} failed: {e.__class__.__name__}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        data = _parse_body(response)
        if not response.is_success:
            raise TransportRejected(response.status_code, data)

        return HttpResult(
            status_code=response.status_code,
            data=data,
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
        )


def build_url(base_url: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _clean_params(params: dict | None) -> dict | None:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
