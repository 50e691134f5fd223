"""ClobTradingCore — the surface the order-submission layer talks to.

Wires settings, the signing capability, the REST client, the nonce resolver,
the response cache and RPC access into one object::

    async with ClobTradingCore() as core:
        creds = await core.create_api_credentials()
        await core.ensure_allowance(wallet, creds)
        order = await core.build_signed_order(intent)
        await core.submit_order(order, creds)

Every operation either returns its result or raises a ``ClobCoreError``
subclass; nothing is retried behind the caller's back.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx
import structlog

from config.settings import Settings, settings
from core.errors import ProtocolMismatchError
from data.nonce_resolver import NonceResolver
from data.response_cache import ResponseCache
from data.rest_client import ClobRestClient
from execution.allowance import AllowanceOrchestrator
from execution.order_builder import OrderBuilder
from models.allowance import AllowanceReport
from models.auth import ApiCredentials, AuthAssertion
from models.order import OrderIntent, OrderType, SignedOrder
from web3_infra.approvals import ApprovalAdapter, ApprovalConfig
from web3_infra.eip712_signer import TypedDataSigner
from web3_infra.hmac_auth import build_l2_headers, serialize_body
from web3_infra.rpc_manager import RPCManager
from web3_infra.signing import SigningCapability, WalletTransport, build_signing_capability

logger = structlog.get_logger("core.client")


class ClobTradingCore:
    """Order construction and authentication for one signing capability.

    Parameters
    ----------
    config:
        Settings; defaults to the module-level ``settings``.
    capability:
        Signing capability.  Built from ``SIGNER_BACKEND`` when omitted.
    transport:
        EIP-1193 transport, required when ``SIGNER_BACKEND=external`` and no
        capability is given.
    http:
        Shared ``httpx.AsyncClient`` (caller-owned).
    rpc_manager:
        Pre-built RPC manager; one over ``POLYGON_RPC_URLS`` otherwise.
    cache:
        Response cache for public lookups; one sized from settings otherwise.
    """

    def __init__(
        self,
        config: Settings = settings,
        capability: SigningCapability | None = None,
        transport: WalletTransport | None = None,
        http: httpx.AsyncClient | None = None,
        rpc_manager: RPCManager | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        if config.CTF_EXCHANGE_ADDRESS.lower() == config.NEG_RISK_CTF_EXCHANGE_ADDRESS.lower():
            raise ProtocolMismatchError(
                "CTF_EXCHANGE_ADDRESS and NEG_RISK_CTF_EXCHANGE_ADDRESS must differ",
                field="NEG_RISK_CTF_EXCHANGE_ADDRESS",
            )
        self._config = config
        self._capability = (
            capability if capability is not None else build_signing_capability(config, transport)
        )
        self._signer = TypedDataSigner(self._capability, config.CHAIN_ID)
        if cache is None:
            cache = ResponseCache(
                ttl_s=config.RESPONSE_CACHE_TTL_SECONDS,
                max_entries=config.RESPONSE_CACHE_MAX_ENTRIES,
            )
        self._cache = cache
        self._rest = ClobRestClient(
            base_url=config.CLOB_REST_BASE_URL,
            timeout=config.HTTP_TIMEOUT_SECONDS,
            http=http,
            cache=self._cache,
        )
        if rpc_manager is None:
            rpc_manager = RPCManager(
                config.rpc_urls, request_timeout_s=config.HTTP_TIMEOUT_SECONDS
            )
        self._rpc = rpc_manager
        self._allowances = AllowanceOrchestrator(
            approvals=ApprovalAdapter(
                self._rpc, self._capability, ApprovalConfig.from_settings(config)
            ),
            rest_client=self._rest,
            exchanges=[config.CTF_EXCHANGE_ADDRESS, config.NEG_RISK_CTF_EXCHANGE_ADDRESS],
            signature_type=config.SIGNATURE_TYPE,
        )
        self._order_builder: OrderBuilder | None = None

    @property
    def capability(self) -> SigningCapability:
        return self._capability

    @property
    def rest(self) -> ClobRestClient:
        return self._rest

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Open HTTP and RPC resources. Idempotent."""
        if self._order_builder is not None:
            return
        await self._rest.start()
        await self._rpc.start()
        nonce_resolver = NonceResolver(self._rest.http, self._config.CLOB_REST_BASE_URL)
        self._order_builder = OrderBuilder(
            signer=self._signer,
            nonce_resolver=nonce_resolver,
            exchange_address=self._config.CTF_EXCHANGE_ADDRESS,
            neg_risk_exchange_address=self._config.NEG_RISK_CTF_EXCHANGE_ADDRESS,
            signature_type=self._config.SIGNATURE_TYPE,
        )
        logger.info(
            "client.started",
            signer_backend=self._config.SIGNER_BACKEND,
            chain_id=self._config.CHAIN_ID,
        )

    async def stop(self) -> None:
        await self._rpc.stop()
        await self._rest.stop()
        self._order_builder = None
        logger.info("client.stopped")

    async def __aenter__(self) -> ClobTradingCore:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ── Orders ───────────────────────────────────────────────────

    async def build_signed_order(
        self, intent: OrderIntent | Mapping[str, Any]
    ) -> SignedOrder:
        """Validate, price and sign *intent*.  See ``OrderBuilder.build``."""
        return await self._require_started().build(intent)

    async def submit_order(
        self,
        order: SignedOrder,
        credentials: ApiCredentials,
        order_type: OrderType | None = None,
    ) -> dict[str, Any]:
        """Post a signed order, authenticated as its signer.

        The time-in-force defaults to the intent's ``order_type``.
        """
        return await self._rest.post_order(order, order.signer, credentials, order_type)

    async def cancel_order(
        self,
        order_id: str,
        credentials: ApiCredentials,
        address: str | None = None,
    ) -> dict[str, Any]:
        address = address or await self._capability.get_active_address()
        return await self._rest.cancel_order(order_id, address, credentials)

    async def is_neg_risk(self, token_id: str) -> bool:
        """Exchange's neg-risk flag for *token_id*; ``False`` when unknown."""
        return await self._rest.get_neg_risk(token_id)

    # ── Authentication ───────────────────────────────────────────

    async def sign_auth_assertion(self, address: str | None = None) -> AuthAssertion:
        """L1 ``ClobAuth`` signature for *address* (the active one by default)."""
        address = address or await self._capability.get_active_address()
        return await self._signer.sign_auth(address)

    async def create_api_credentials(self, address: str | None = None) -> ApiCredentials:
        """Derive existing L2 credentials, creating them if none exist."""
        assertion = await self.sign_auth_assertion(address)
        credentials = await self._rest.create_or_derive_api_credentials(assertion)
        logger.info("client.credentials_ready", address=assertion.address)
        return credentials

    async def list_api_keys(self, address: str | None = None) -> Any:
        assertion = await self.sign_auth_assertion(address)
        return await self._rest.list_api_keys(assertion)

    async def revoke_api_key(
        self, api_key: str | None = None, address: str | None = None
    ) -> Any:
        """Delete an API key of *address*; L2 credentials using it stop working."""
        assertion = await self.sign_auth_assertion(address)
        return await self._rest.revoke_api_key(assertion, api_key)

    async def build_authenticated_headers(
        self,
        method: str,
        path: str,
        body: Any,
        credentials: ApiCredentials,
        address: str | None = None,
    ) -> dict[str, str]:
        """L2 headers for a request the caller sends itself.

        A non-string *body* is serialized to compact JSON; send that exact
        string (``serialize_body``) or the signature will not match.
        """
        address = address or await self._capability.get_active_address()
        return build_l2_headers(address, credentials, method, path, serialize_body(body))

    # ── Allowances ───────────────────────────────────────────────

    async def ensure_allowance(
        self,
        wallet_address: str,
        credentials: ApiCredentials,
        include_conditional: bool = False,
    ) -> AllowanceReport:
        """Approve and sync whatever the wallet is missing.

        Pass ``include_conditional=True`` before selling outcome tokens.
        """
        self._require_started()
        return await self._allowances.ensure_allowance(
            wallet_address, credentials, include_conditional
        )

    async def check_allowance(
        self, wallet_address: str, include_conditional: bool = False
    ) -> AllowanceReport:
        self._require_started()
        return await self._allowances.check(wallet_address, include_conditional)

    # ── Internals ────────────────────────────────────────────────

    def _require_started(self) -> OrderBuilder:
        if self._order_builder is None:
            raise RuntimeError("ClobTradingCore not started — call start() first")
        return self._order_builder
