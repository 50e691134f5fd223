"""NonceResolver — exchange-side replay counter for a maker address.

The nonce query has lived at several paths over time, so the lookup is an
ordered list of endpoint descriptors walked until one answers.  A 404 means
"no order history" and is expected for new makers.  The resolver never
raises: if nothing answers, the nonce is 0, which is correct for a maker's
first order and at worst yields an exchange-side rejection, never a
mis-signed order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
import structlog

from data.response_cache import ResponseCache

logger = structlog.get_logger("data.nonce_resolver")


@dataclass(frozen=True)
class NonceEndpoint:
    """One nonce query variant, relative to the CLOB base URL."""

    name: str
    path: str


DEFAULT_NONCE_ENDPOINTS: tuple[NonceEndpoint, ...] = (
    NonceEndpoint("exchange", "/nonce"),
    NonceEndpoint("exchange_alt", "/exchange/nonce"),
    NonceEndpoint("neg_risk", "/neg-risk/nonce"),
)


@dataclass(frozen=True)
class NonceAttempt:
    """Outcome of querying one endpoint."""

    endpoint: NonceEndpoint
    nonce: int | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.nonce is not None


class NonceResolver:
    """Linear fallback over nonce endpoints.  No retries, no locking.

    Parameters
    ----------
    http:
        Shared ``httpx.AsyncClient``.  Not closed by the resolver.
    base_url:
        CLOB REST base URL.
    endpoints:
        Ordered endpoint descriptors; the first successful answer wins.
    cache:
        Optional short-TTL cache.  Off by default: a stale nonce gets the
        order rejected.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        endpoints: tuple[NonceEndpoint, ...] = DEFAULT_NONCE_ENDPOINTS,
        cache: ResponseCache | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._endpoints = endpoints
        self._cache = cache

    @property
    def endpoints(self) -> tuple[NonceEndpoint, ...]:
        return self._endpoints

    async def resolve_nonce(self, maker: str) -> int:
        """Return the current exchange nonce for *maker*, or 0."""
        maker = maker.lower()
        cache_key = ("nonce", maker)
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        async for attempt in self._attempts(maker):
            if attempt.ok:
                logger.debug(
                    "nonce_resolver.resolved",
                    endpoint=attempt.endpoint.name,
                    maker=maker,
                    nonce=attempt.nonce,
                )
                if self._cache is not None:
                    self._cache.set(cache_key, attempt.nonce)
                return attempt.nonce  # type: ignore[return-value]

        logger.info("nonce_resolver.default_zero", maker=maker)
        return 0

    async def _attempts(self, maker: str) -> AsyncIterator[NonceAttempt]:
        for endpoint in self._endpoints:
            attempt = await self._query(endpoint, maker)
            if attempt.ok:
                yield attempt
                return
            if attempt.status_code == 404:
                logger.info(
                    "nonce_resolver.no_history",
                    endpoint=endpoint.name,
                    maker=maker,
                )
            else:
                logger.warning(
                    "nonce_resolver.endpoint_failed",
                    endpoint=endpoint.name,
                    status=attempt.status_code,
                    error=attempt.error,
                )
            yield attempt

    async def _query(self, endpoint: NonceEndpoint, maker: str) -> NonceAttempt:
        url = f"{self._base_url}{endpoint.path}"
        try:
            response = await self._http.get(
                url,
                params={"maker": maker},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            return NonceAttempt(endpoint, error=f"{type(exc).__name__}: {exc}")

        if not response.is_success:
            return NonceAttempt(endpoint, status_code=response.status_code)

        try:
            nonce = _parse_nonce(response.json())
        except ValueError as exc:
            return NonceAttempt(endpoint, status_code=response.status_code, error=str(exc))
        return NonceAttempt(endpoint, nonce=nonce, status_code=response.status_code)


def _parse_nonce(payload: Any) -> int:
    """Extract a non-negative integer from ``{"nonce": ...}`` or ``{"data": ...}``.

    An object carrying neither field means the exchange has no nonce on
    record for the maker, which is 0.
    """
    if isinstance(payload, dict):
        raw = payload.get("nonce")
        if raw is None:
            raw = payload.get("data")
        if raw is None:
            return 0
    else:
        raw = payload
    if raw is None or isinstance(raw, bool):
        raise ValueError(f"no nonce in response: {payload!r}")
    try:
        value = int(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"nonce is not an integer: {raw!r}") from exc
    if value < 0:
        raise ValueError(f"negative nonce: {value}")
    return value
