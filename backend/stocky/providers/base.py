"""Shared HTTP plumbing for the upstream market-data providers.

Every call goes through :meth:`ProviderClient._request`, which attaches
credentials, applies the per-provider timeout and retries transient failures
(no response, timeouts and HTTP 429) with exponential backoff. ``Retry-After``
wins over the computed delay when the provider sends one. Everything else is
classified into an :class:`UpstreamError` on the spot.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Mapping

import httpx

from stocky.core.errors import UpstreamError, UpstreamErrorKind
from stocky.core.rate_limit import OutboundThrottle

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]

USER_AGENT = "Stocky-Dashboard/1.0"


def parse_retry_after(value: str | None) -> float | None:
    """Return the ``Retry-After`` header as seconds, or ``None``."""

    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = str(value)
    return cleaned


class ProviderClient:
    """Base class for provider clients with retry and backoff."""

    provider = "upstream"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 4,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        throttle: OutboundThrottle | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._throttle = throttle
        self._sleep = sleep

    def auth_headers(self) -> dict[str, str]:
        return {}

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number ``attempt`` (1-based): base, 2x base, 4x base..."""

        if retry_after is not None:
            return min(retry_after, self.max_backoff_seconds)
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)

    async def _send(self, url: str, params: dict[str, str], headers: dict[str, str]) -> httpx.Response:
        if self._throttle is None:
            return await self._client.get(url, params=params, headers=headers, timeout=self.timeout_seconds)
        async with self._throttle:
            return await self._client.get(url, params=params, headers=headers, timeout=self.timeout_seconds)

    async def _request(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        query = _clean_params(params)
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT, **self.auth_headers()}

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._send(url, query, headers)
            except httpx.TimeoutException as exc:
                error = UpstreamError(self.provider, UpstreamErrorKind.TIMEOUT, f"Request to {path} timed out: {exc}")
            except httpx.TransportError as exc:
                error = UpstreamError(self.provider, UpstreamErrorKind.NETWORK_ERROR, f"Failed to reach {self.provider}: {exc}")
            else:
                if response.status_code != 429:
                    return self._handle_response(response)
                error = UpstreamError(
                    self.provider,
                    UpstreamErrorKind.RATE_LIMIT,
                    "Too many requests. Please try again later.",
                    status_code=429,
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                )

            if attempt >= self.max_attempts:
                logger.error("%s %s failed after %d attempts: %s", self.provider, path, attempt, error.message)
                raise error

            delay = self.backoff_delay(attempt, error.retry_after)
            logger.warning(
                "%s %s attempt %d/%d failed (%s); retrying in %.2fs",
                self.provider,
                path,
                attempt,
                self.max_attempts,
                error.kind.value,
                delay,
            )
            await self._sleep(delay)

    def _handle_response(self, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            raise self._error_from_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                self.provider,
                UpstreamErrorKind.UNKNOWN,
                f"{self.provider} returned invalid JSON payload",
                status_code=response.status_code,
            ) from exc
        self.check_payload(payload)
        return payload

    def check_payload(self, payload: Any) -> None:
        """Hook for providers that report errors inside a 200 response."""

    def _error_from_response(self, response: httpx.Response) -> UpstreamError:
        detail = self.error_detail(response)
        code = response.status_code
        if code in (401, 403):
            kind = UpstreamErrorKind.UNAUTHORIZED
            message = "Invalid API key or insufficient permissions."
        elif code == 404:
            kind = UpstreamErrorKind.INVALID_SYMBOL
            message = "The requested resource was not found."
        else:
            kind = UpstreamErrorKind.UNKNOWN
            message = f"HTTP {code}: {detail}"
        logger.warning("%s returned HTTP %d: %s", self.provider, code, detail)
        return UpstreamError(self.provider, kind, message, status_code=code)

    def error_detail(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(payload, dict):
            return str(payload.get("error") or payload.get("message") or payload)
        return str(payload)

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        normalized = (symbol or "").strip().upper()
        if not normalized:
            raise UpstreamError("validation", UpstreamErrorKind.INVALID_SYMBOL, "Symbol is required")
        return normalized

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ProviderClient", "USER_AGENT", "parse_retry_after"]
