"""
backend/oddsleague/providers/http_client.py

Purpose:
    Shared outbound HTTP for the odds and result providers: bounded timeout,
    retry with exponential backoff on 429/5xx and network errors, and a
    per-provider circuit breaker the adapters consult before each pass.

Dependencies:
    - httpx
    - oddsleague.config
"""

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx

from oddsleague.config import settings

logger = logging.getLogger("oddsleague.http_client")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_DELAY_SECONDS = 30.0
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


class CircuitBreaker:
    """Opens after N consecutive failures; half-opens once the recovery period has passed."""

    def __init__(
        self,
        name: str,
        failure_threshold: int | None = None,
        recovery_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = (
            failure_threshold if failure_threshold is not None
            else settings.PROVIDER_CIRCUIT_FAILURE_THRESHOLD
        )
        self.recovery_seconds = (
            recovery_seconds if recovery_seconds is not None
            else settings.PROVIDER_CIRCUIT_RECOVERY_SECONDS
        )
        self._clock = clock
        self.failure_count = 0
        self.last_failure_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.failure_count >= self.failure_threshold

    def record_success(self) -> None:
        if self.is_open:
            logger.info("[%s] Circuit closed after a successful call", self.name)
        self.failure_count = 0
        self.last_failure_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_at = self._clock()
        if self.failure_count == self.failure_threshold:
            logger.warning(
                "[%s] Circuit OPEN after %d consecutive failures", self.name, self.failure_count,
            )

    def can_attempt(self) -> bool:
        if not self.is_open:
            return True
        elapsed = self._clock() - (self.last_failure_at or 0.0)
        if elapsed >= self.recovery_seconds:
            logger.info("[%s] Circuit half-open, allowing one attempt", self.name)
            return True
        return False


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Server-requested wait from Retry-After / X-RateLimit-Retry-After, if numeric."""
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return max(float(value), 0.0)
        except ValueError:
            continue
    return None


def backoff_delay(attempt: int, base_delay: float, response: httpx.Response | None = None) -> float:
    """Retry-After when the server sent one, else base * 2^attempt; capped."""
    delay = retry_after_seconds(response) if response is not None else None
    if delay is None:
        delay = base_delay * (2 ** attempt)
    return min(delay, MAX_DELAY_SECONDS)


def safe_url(url: str) -> str:
    """Strip query params (they carry API keys) for logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient wrapper owning one provider's retry policy and circuit breaker.

    Retryable statuses are retried and, once attempts run out, the last
    response is returned for the adapter to map. Network errors are retried
    and re-raised when attempts run out.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        circuit: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.max_retries = max_retries if max_retries is not None else settings.PROVIDER_MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else settings.PROVIDER_BASE_DELAY_SECONDS
        self.circuit = circuit or CircuitBreaker(name)
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        attempts = self.max_retries + 1
        for attempt in range(self.max_retries):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except _NETWORK_ERRORS as exc:
                logger.warning(
                    "[%s] %s on %s %s (attempt %d/%d)",
                    self.name, type(exc).__name__, method, safe_url(url), attempt + 1, attempts,
                )
                await asyncio.sleep(backoff_delay(attempt, self.base_delay))
                continue

            if resp.status_code not in RETRYABLE_STATUSES:
                return resp
            logger.warning(
                "[%s] HTTP %d on %s %s (attempt %d/%d)",
                self.name, resp.status_code, method, safe_url(url), attempt + 1, attempts,
            )
            await asyncio.sleep(backoff_delay(attempt, self.base_delay, resp))

        # Final attempt: network errors propagate, a retryable status is returned as is.
        resp = await self._client.request(method, url, **kwargs)
        if resp.status_code in RETRYABLE_STATUSES:
            logger.error(
                "[%s] Giving up on %s %s after %d attempts (HTTP %d)",
                self.name, method, safe_url(url), attempts, resp.status_code,
            )
        return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)
