"""Shared plumbing for provider clients.

Every client talks to one external source and normalizes its payload into an
intermediate shape. The exceptions below are raised inside a client and caught
at its public boundary; callers only ever see an empty result.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from trendscope.core.config import settings
from trendscope.core.logging import get_logger

Sleeper = Callable[[float], Awaitable[None]]


class ProviderError(Exception):
    """Base error for external provider calls."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or non-success status."""


class MalformedPayload(ProviderError):
    """The provider answered with a shape we cannot map."""


class RateLimited(ProviderUnavailable):
    """HTTP 429; `retry_after` is the server-provided delay in seconds, if any."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class BaseProvider:
    """Base class for HTTP-backed provider clients."""

    name: str = "provider"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.sleep: Sleeper = sleep or asyncio.sleep
        self.log = get_logger(f"providers.{self.name}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET `url` and decode JSON, translating failures into ProviderError subclasses."""
        try:
            resp = await self.client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"{self.name}: request failed: {exc!r}") from exc

        if resp.status_code == 429:
            raise RateLimited(
                f"{self.name}: rate limited",
                retry_after=parse_retry_after(resp.headers.get("retry-after")),
            )
        if resp.status_code >= 400:
            raise ProviderUnavailable(
                f"{self.name}: HTTP {resp.status_code}",
                {"status_code": resp.status_code},
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedPayload(f"{self.name}: response is not JSON") from exc

    def report(self, exc: ProviderError, action: str) -> None:
        """Log a boundary failure at the level its category calls for."""
        if isinstance(exc, MalformedPayload):
            self.log.error(f"{action} failed, malformed payload: {exc.message}")
        else:
            self.log.warning(f"{action} failed: {exc.message}")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def safe_float(value: Any) -> float:
    """Coerce provider numerics (which may be null or strings) to float, 0.0 on failure."""
    if value is None:
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if result != result else result


def safe_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing or not a dict."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data
