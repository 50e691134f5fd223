"""RPCManager — Polygon RPC access with ordered failover.

The approval flow issues a handful of reads and at most four transactions
per run, so there is no background health loop: health is learned from the
calls themselves.

- Failover to the next endpoint when a call fails
- Endpoint status derived from its current failure streak
- Endpoints marked DOWN are tried last, never skipped entirely
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import urlparse

import structlog
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from core.errors import ClobCoreError, NetworkUnavailable

logger = structlog.get_logger("web3_infra.rpc_manager")

T = TypeVar("T")

_LATENCY_ALPHA = 0.3


class EndpointStatus(str, Enum):
    """Health status of an RPC endpoint."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"


@dataclass
class EndpointMetrics:
    """Call history for one endpoint.

    ``status`` is not stored: one failure in a row makes an endpoint
    DEGRADED, ``down_after`` in a row makes it DOWN, any success resets it.
    """

    url: str
    down_after: int = 3
    calls: int = 0
    failures: int = 0
    failure_streak: int = 0
    latency_ema_ms: float | None = None
    last_error: str | None = None

    @property
    def status(self) -> EndpointStatus:
        if self.failure_streak == 0:
            return EndpointStatus.HEALTHY
        if self.failure_streak < self.down_after:
            return EndpointStatus.DEGRADED
        return EndpointStatus.DOWN

    @property
    def failure_rate(self) -> float:
        return self.failures / self.calls if self.calls else 0.0

    def record_success(self, latency_ms: float) -> None:
        self.calls += 1
        self.failure_streak = 0
        self.last_error = None
        if self.latency_ema_ms is None:
            self.latency_ema_ms = latency_ms
        else:
            self.latency_ema_ms += _LATENCY_ALPHA * (latency_ms - self.latency_ema_ms)

    def record_failure(self, error: str) -> None:
        self.calls += 1
        self.failures += 1
        self.failure_streak += 1
        self.last_error = error

    def summary(self) -> dict[str, Any]:
        latency = self.latency_ema_ms
        return {
            "url": RPCManager._redact_url(self.url),
            "status": self.status.value,
            "latency_ema_ms": None if latency is None else round(latency, 1),
            "failure_rate": round(self.failure_rate, 4),
            "failure_streak": self.failure_streak,
            "last_error": self.last_error,
        }


class RPCManager:
    """Pool of ``AsyncWeb3`` instances tried in priority order.

    Usage::

        async with RPCManager(settings.rpc_urls) as rpc:
            balance = await rpc.execute(
                lambda w3: w3.eth.get_balance(address)
            )

    Parameters
    ----------
    endpoints:
        RPC URLs, first is preferred while healthy.
    request_timeout_s:
        Per-request HTTP timeout.
    down_after:
        Consecutive failures before an endpoint counts as DOWN.
    """

    def __init__(
        self,
        endpoints: list[str],
        request_timeout_s: float = 10.0,
        down_after: int = 3,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one RPC endpoint is required")

        self._endpoints = list(endpoints)
        self._request_timeout_s = request_timeout_s
        self._metrics = {
            url: EndpointMetrics(url=url, down_after=down_after) for url in self._endpoints
        }
        self._clients: dict[str, AsyncWeb3] = {}

    @property
    def metrics(self) -> dict[str, EndpointMetrics]:
        return dict(self._metrics)

    @property
    def started(self) -> bool:
        return bool(self._clients)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Create one Web3 instance per endpoint. Idempotent."""
        if self.started:
            return
        self._clients = {
            url: AsyncWeb3(
                AsyncHTTPProvider(url, request_kwargs={"timeout": self._request_timeout_s})
            )
            for url in self._endpoints
        }
        logger.info(
            "rpc_manager.started",
            endpoints=[self._redact_url(u) for u in self._endpoints],
        )

    async def stop(self) -> None:
        """Drop Web3 instances. Idempotent."""
        if not self.started:
            return
        self._clients = {}
        logger.info("rpc_manager.stopped")

    async def __aenter__(self) -> RPCManager:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ── Public API ───────────────────────────────────────────────

    async def execute(self, fn: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        """Run *fn* against endpoints in priority order until one succeeds.

        *fn* may be invoked once per endpoint, so it must be safe to repeat
        (reads, or a transaction build that re-reads the account nonce).
        A ``ClobCoreError`` raised by *fn* itself propagates immediately.

        Raises
        ------
        RPCError
            If every endpoint fails.
        """
        if not self.started:
            raise RuntimeError("RPCManager not started — call start() first")

        last_error: Exception | None = None
        last_message: str | None = None
        for url in self._endpoints_by_priority():
            metrics = self._metrics[url]
            previous = metrics.status
            t0 = time.monotonic()
            try:
                result = await fn(self._clients[url])
            except ClobCoreError:
                raise
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}".replace(url, self._redact_url(url))
                metrics.record_failure(error)
                last_error = exc
                last_message = error
                logger.warning(
                    "rpc_manager.call_failed",
                    url=self._redact_url(url),
                    error=metrics.last_error,
                    failure_streak=metrics.failure_streak,
                )
                continue

            metrics.record_success((time.monotonic() - t0) * 1000)
            if previous is EndpointStatus.DOWN:
                logger.info("rpc_manager.endpoint_recovered", url=self._redact_url(url))
            return result

        raise RPCError(
            f"No RPC endpoint answered ({len(self._endpoints)} tried)",
            last_error=last_error,
            details=last_message,
        )

    def get_endpoint_status(self) -> list[dict[str, Any]]:
        """Summary of all endpoints for operator output."""
        return [self._metrics[url].summary() for url in self._endpoints]

    # ── Internals ────────────────────────────────────────────────

    def _endpoints_by_priority(self) -> list[str]:
        """HEALTHY, then DEGRADED, then DOWN; configured order within a tier."""
        tiers = list(EndpointStatus)
        return sorted(self._endpoints, key=lambda url: tiers.index(self._metrics[url].status))

    @staticmethod
    def _redact_url(url: str) -> str:
        """Scheme and host only; RPC URLs often embed API keys."""
        parsed = urlparse(url)
        if not parsed.hostname:
            return url[:30] + "..."
        return f"{parsed.scheme}://{parsed.hostname}"


class RPCError(NetworkUnavailable):
    """Raised when all RPC endpoints fail."""

    def __init__(
        self,
        message: str,
        last_error: Exception | None = None,
        details: str | None = None,
    ) -> None:
        if details is None and last_error is not None:
            details = str(last_error)
        super().__init__(message, details=details)
        self.last_error = last_error
