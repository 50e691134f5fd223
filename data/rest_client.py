"""ClobRestClient — thin async client for the CLOB REST endpoints this core uses.

- L1: derive, create, list and revoke API credentials from a signed ``ClobAuth`` assertion
- L2: order entry, cancel, balance/allowance read and sync (HMAC headers)
- public: neg-risk flag for a token

The L2 signature covers the request path without its query string; the
exact body string that was signed is the one sent.  Order entry is never
retried here: a retried POST could place the same signed order twice.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from core.errors import (
    ApiKeyError,
    AuthenticationFailed,
    NetworkDegraded,
    NetworkUnavailable,
    OrderRejected,
)
from core.logger import truncate
from data.response_cache import ResponseCache
from models.allowance import AssetType
from models.auth import ApiCredentials, AuthAssertion
from models.order import OrderType, SignedOrder
from web3_infra.hmac_auth import build_l1_headers, build_l2_headers, serialize_body

logger = structlog.get_logger("data.rest_client")

_DEFAULT_BASE_URL = "https://clob.polymarket.com"

ORDER_ERROR_MESSAGES: dict[str, str] = {
    "INVALID_ORDER_MIN_TICK_SIZE": "Order price breaks minimum tick size rules",
    "INVALID_ORDER_MIN_SIZE": "Order size is below the minimum requirement",
    "INVALID_ORDER_DUPLICATED": "This order has already been placed",
    "INVALID_ORDER_NOT_ENOUGH_BALANCE": "Insufficient balance or allowance",
    "INVALID_ORDER_EXPIRATION": "Order expiration is invalid",
    "INVALID_ORDER_ERROR": "Could not insert order",
    "EXECUTION_ERROR": "Could not execute trade",
    "ORDER_DELAYED": "Order match delayed due to market conditions",
    "DELAYING_ORDER_ERROR": "Error delaying the order",
    "FOK_ORDER_NOT_FILLED_ERROR": "FOK order could not be fully filled",
    "MARKET_NOT_READY": "Market is not yet ready to process new orders",
}


class ClobRestClient:
    """Async REST client for the CLOB API.

    Parameters
    ----------
    base_url:
        CLOB REST API base URL.
    timeout:
        HTTP request timeout in seconds.
    http:
        Pre-built ``httpx.AsyncClient``.  When given, the caller owns its
        lifecycle and ``start`` / ``stop`` leave it alone.
    cache:
        Optional cache for public lookups (neg-risk flags).
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = 10.0,
        http: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = http
        self._owns_client = http is None
        self._cache = cache

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ClobRestClient not started — call start() first")
        return self._client

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Create the underlying HTTP client if one was not injected."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        logger.info("rest_client.started", base_url=self._base_url)

    async def stop(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("rest_client.stopped")

    async def __aenter__(self) -> ClobRestClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ── L1: API credentials ──────────────────────────────────────

    async def derive_api_key(self, assertion: AuthAssertion) -> ApiCredentials:
        """Recover the existing credentials for the asserted address."""
        response = await self._send(
            "GET", "/auth/derive-api-key", headers=build_l1_headers(assertion)
        )
        return self._parse_credentials(response, "/auth/derive-api-key")

    async def create_api_key(self, assertion: AuthAssertion) -> ApiCredentials:
        """Mint new credentials for the asserted address."""
        response = await self._send(
            "POST", "/auth/api-key", headers=build_l1_headers(assertion)
        )
        return self._parse_credentials(response, "/auth/api-key")

    async def create_or_derive_api_credentials(
        self, assertion: AuthAssertion
    ) -> ApiCredentials:
        """Derive first; create only when nothing can be derived."""
        try:
            return await self.derive_api_key(assertion)
        except ApiKeyError as exc:
            logger.info(
                "rest_client.derive_failed_creating",
                address=assertion.address,
                status=exc.status_code,
            )
        return await self.create_api_key(assertion)

    async def list_api_keys(self, assertion: AuthAssertion) -> Any:
        """API keys registered for the asserted address."""
        path = "/auth/api-keys"
        response = await self._send("GET", path, headers=build_l1_headers(assertion))
        data = self._check_api_key_response(response, path)
        logger.info("rest_client.api_keys_listed", address=assertion.address)
        return data

    async def revoke_api_key(
        self, assertion: AuthAssertion, api_key: str | None = None
    ) -> Any:
        """Delete *api_key*, or the key the exchange resolves for the assertion."""
        path = "/auth/api-key"
        response = await self._send(
            "DELETE",
            path,
            headers=build_l1_headers(assertion),
            params={"apiKey": api_key} if api_key else None,
        )
        data = self._check_api_key_response(response, path)
        logger.info(
            "rest_client.api_key_revoked",
            address=assertion.address,
            api_key=truncate(api_key) if api_key else None,
        )
        return data

    # ── L2: orders ───────────────────────────────────────────────

    async def post_order(
        self,
        order: SignedOrder,
        address: str,
        credentials: ApiCredentials,
        order_type: OrderType | None = None,
    ) -> dict[str, Any]:
        """Submit a signed order.

        *order_type* overrides the time-in-force the order was built with.

        Returns
        -------
        dict
            Exchange response (``orderId``, ``status``, ``orderHashes`` ...).

        Raises
        ------
        AuthenticationFailed
            401 from the exchange.
        OrderRejected
            Any other non-2xx, or ``success: false`` in the body.
        NetworkUnavailable
            Transport failure.  The order may or may not have been placed.
        """
        path = "/order"
        body = serialize_body(order.to_api_payload(credentials.api_key, order_type))
        headers = build_l2_headers(address, credentials, "POST", path, body)
        headers["Content-Type"] = "application/json"

        response = await self._send("POST", path, headers=headers, content=body)
        if response.status_code == 401:
            raise _auth_failed(response, path)
        if not response.is_success:
            raise _order_rejected(response, path)

        data = _json_or_text(response)
        if isinstance(data, dict) and data.get("success") is False:
            raise _order_rejected(response, path)

        logger.info(
            "rest_client.order_posted",
            order_id=data.get("orderId") if isinstance(data, dict) else None,
            status=data.get("status") if isinstance(data, dict) else None,
            side=order.side.value,
            token_id=truncate(order.token_id, 20),
        )
        return data

    async def cancel_order(
        self, order_id: str, address: str, credentials: ApiCredentials
    ) -> dict[str, Any]:
        path = f"/orders/{order_id}"
        headers = build_l2_headers(address, credentials, "DELETE", path)
        response = await self._send("DELETE", path, headers=headers)
        if response.status_code == 401:
            raise _auth_failed(response, path)
        if not response.is_success:
            raise OrderRejected(
                f"Failed to cancel order: {response.status_code}",
                error_code="CANCEL_FAILED",
                endpoint=path,
                status_code=response.status_code,
                details=_json_or_text(response),
            )
        logger.info("rest_client.order_cancelled", order_id=order_id)
        return _json_or_text(response)

    # ── L2: balance / allowance ──────────────────────────────────

    async def get_balance_allowance(
        self,
        asset_type: AssetType,
        address: str,
        credentials: ApiCredentials,
        signature_type: int = 0,
    ) -> dict[str, Any]:
        return await self._balance_allowance(
            "/balance-allowance", asset_type, address, credentials, signature_type
        )

    async def update_balance_allowance(
        self,
        asset_type: AssetType,
        address: str,
        credentials: ApiCredentials,
        signature_type: int = 0,
    ) -> dict[str, Any]:
        """Ask the exchange to re-read on-chain balance and allowance.

        Raises
        ------
        AuthenticationFailed
            401 from the exchange.
        NetworkDegraded
            Any other failure.
        """
        return await self._balance_allowance(
            "/balance-allowance/update", asset_type, address, credentials, signature_type
        )

    # ── Public ───────────────────────────────────────────────────

    async def get_neg_risk(self, token_id: str) -> bool:
        """Whether *token_id* trades on the neg-risk exchange.

        Any failure answers ``False``; callers that must be sure pass
        ``neg_risk`` explicitly.
        """
        if self._cache is not None:
            return await self._cache.get_or_load(
                ("neg_risk", token_id), lambda: self._fetch_neg_risk(token_id)
            )
        return await self._fetch_neg_risk(token_id)

    # ── Internals ────────────────────────────────────────────────

    async def _fetch_neg_risk(self, token_id: str) -> bool:
        try:
            response = await self._send(
                "GET",
                "/neg-risk",
                params={"token_id": token_id},
                headers={"Accept": "application/json"},
            )
        except NetworkUnavailable as exc:
            logger.warning(
                "rest_client.neg_risk_failed",
                token_id=truncate(token_id, 20),
                error=exc.message,
            )
            return False
        if not response.is_success:
            logger.warning(
                "rest_client.neg_risk_failed",
                token_id=truncate(token_id, 20),
                status=response.status_code,
            )
            return False
        data = _json_or_text(response)
        return isinstance(data, dict) and data.get("neg_risk") is True

    async def _balance_allowance(
        self,
        path: str,
        asset_type: AssetType,
        address: str,
        credentials: ApiCredentials,
        signature_type: int,
    ) -> dict[str, Any]:
        asset_type = AssetType(asset_type)
        headers = build_l2_headers(address, credentials, "GET", path)
        response = await self._send(
            "GET",
            path,
            params={"asset_type": asset_type.value, "signature_type": signature_type},
            headers=headers,
        )
        if response.status_code == 401:
            raise _auth_failed(response, path)
        if not response.is_success:
            data = _json_or_text(response)
            message = data.get("error") if isinstance(data, dict) else None
            raise NetworkDegraded(
                message or f"Balance/allowance request failed: {response.status_code}",
                endpoint=path,
                status_code=response.status_code,
                details=data,
            )
        return _json_or_text(response)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        content: str | None = None,
    ) -> httpx.Response:
        try:
            return await self.http.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                params=params,
                content=content,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "rest_client.transport_error",
                method=method,
                path=path,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise NetworkUnavailable(
                f"{method} {path} failed: {exc}", endpoint=path
            ) from exc

    @staticmethod
    def _check_api_key_response(response: httpx.Response, path: str) -> Any:
        if response.status_code == 401:
            raise _auth_failed(response, path)
        data = _json_or_text(response)
        if not response.is_success:
            raise ApiKeyError(
                f"API key request failed: {response.status_code}",
                endpoint=path,
                status_code=response.status_code,
                details=data,
            )
        return data

    @staticmethod
    def _parse_credentials(response: httpx.Response, path: str) -> ApiCredentials:
        data = _json_or_text(response)
        if not response.is_success:
            text = data if isinstance(data, str) else str(data)
            message = f"API key request failed: {response.status_code}"
            if "Could not create api key" in text:
                message = "Account not found; sign up on the exchange first"
            raise ApiKeyError(
                message, endpoint=path, status_code=response.status_code, details=data
            )
        if not isinstance(data, dict):
            raise ApiKeyError("API key response is not an object", endpoint=path, details=data)
        try:
            return ApiCredentials.from_api(data)
        except ValueError as exc:
            raise ApiKeyError(
                "API key response is missing fields", endpoint=path, details=str(exc)
            ) from exc


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _auth_failed(response: httpx.Response, path: str) -> AuthenticationFailed:
    logger.error("rest_client.auth_failed", path=path)
    return AuthenticationFailed(
        "Authentication failed; API credentials may be expired or invalid",
        endpoint=path,
        status_code=401,
        details=_json_or_text(response),
    )


def _order_rejected(response: httpx.Response, path: str) -> OrderRejected:
    data = _json_or_text(response)
    if not isinstance(data, dict):
        data = {"errorMsg": data}
    error_code = data.get("error") or "UNKNOWN_ERROR"
    message = (
        ORDER_ERROR_MESSAGES.get(error_code)
        or data.get("errorMsg")
        or f"Failed to place order: {response.status_code}"
    )
    logger.warning(
        "rest_client.order_rejected",
        status=response.status_code,
        error_code=error_code,
        message=message,
    )
    return OrderRejected(
        message,
        error_code=error_code,
        endpoint=path,
        status_code=response.status_code,
        details=data,
    )
