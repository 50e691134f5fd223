"""Signing capabilities — the boundary between this core and a key.

Two variants, chosen by configuration (``SIGNER_BACKEND``), never by probing
the environment:

- ``LocalKeySigner``: a hex private key held in-process (``eth_account``).
- ``ExternalWalletSigner``: a wallet reached through an EIP-1193 style
  ``request(method, params)`` transport (browser bridge, WalletConnect relay,
  remote signer).  Every call may wait on a human for an unbounded time;
  callers own timeouts.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import Any, Protocol

import structlog
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3

from config.settings import Settings
from core.errors import SignerError, SignerRejected, SignerUnavailable, WrongChain

logger = structlog.get_logger("web3_infra.signing")

# EIP-1193 / MetaMask error codes
USER_REJECTED_CODES = (4001, "ACTION_REJECTED")
UNRECOGNIZED_CHAIN_CODE = 4902

POLYGON_CHAIN_PARAMS: dict[str, Any] = {
    "chainId": hex(137),
    "chainName": "Polygon Mainnet",
    "nativeCurrency": {"name": "MATIC", "symbol": "MATIC", "decimals": 18},
    "rpcUrls": ["https://polygon-rpc.com"],
    "blockExplorerUrls": ["https://polygonscan.com"],
}


def to_0x_hex(value: bytes | str) -> str:
    """Hex-encode bytes with a single ``0x`` prefix."""
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return "0x" + bytes(value).hex()


class SigningCapability(ABC):
    """What the signing core needs from a key holder."""

    @abstractmethod
    async def get_active_address(self) -> str:
        """Checksummed address that will produce signatures."""

    @abstractmethod
    async def ensure_chain(self, chain_id: int) -> None:
        """Make sure signatures and transactions target *chain_id*.

        Raises ``WrongChain`` or ``SignerRejected``.
        """

    @abstractmethod
    async def sign_typed_data(self, typed_data: dict[str, Any]) -> str:
        """Sign a full EIP-712 document; return a 0x-prefixed signature."""

    @abstractmethod
    async def send_transaction(self, w3: AsyncWeb3, tx: dict[str, Any]) -> str:
        """Sign and broadcast *tx*; return the 0x-prefixed transaction hash."""


# ── Local key ────────────────────────────────────────────────────────


def _sign_typed_data_sync(private_key: bytes, typed_data: dict[str, Any]) -> str:
    signable = encode_typed_data(full_message=typed_data)
    signed = Account.sign_message(signable, private_key=private_key)
    return to_0x_hex(signed.signature)


class LocalKeySigner(SigningCapability):
    """In-process key.  Always "on" whatever chain the domain names.

    Parameters
    ----------
    private_key:
        Hex-encoded private key (``0x`` prefix optional).
    executor:
        Where the elliptic-curve work runs.  ``None`` uses the loop's
        default thread pool so the event loop is not blocked.
    """

    def __init__(self, private_key: str, executor: Executor | None = None) -> None:
        if not private_key:
            raise SignerUnavailable("No private key configured")
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except ValueError as exc:
            raise SignerUnavailable(f"Invalid private key: {exc}") from exc
        self._executor = executor

    @property
    def address(self) -> str:
        return self._account.address

    async def get_active_address(self) -> str:
        return self._account.address

    async def ensure_chain(self, chain_id: int) -> None:
        return None

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> str:
        loop = asyncio.get_running_loop()
        signature = await loop.run_in_executor(
            self._executor,
            _sign_typed_data_sync,
            self._account.key,
            typed_data,
        )
        logger.debug(
            "signing.local_signed",
            primary_type=typed_data.get("primaryType"),
            address=self._account.address,
        )
        return signature

    async def send_transaction(self, w3: AsyncWeb3, tx: dict[str, Any]) -> str:
        tx = dict(tx)
        tx.setdefault("from", self._account.address)
        signed = self._account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        return to_0x_hex(tx_hash)


# ── External wallet ──────────────────────────────────────────────────


class WalletTransport(Protocol):
    """EIP-1193 ``request`` surface."""

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        ...


class WalletRpcError(Exception):
    """Error raised by a ``WalletTransport`` (EIP-1193 ``ProviderRpcError``)."""

    def __init__(self, message: str, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ExternalWalletSigner(SigningCapability):
    """Wallet reached over an EIP-1193 transport.

    Parameters
    ----------
    transport:
        Object with ``async request(method, params)``.
    chain_params:
        ``wallet_addEthereumChain`` parameters used when the wallet does not
        know the target chain yet (error 4902).
    """

    def __init__(
        self,
        transport: WalletTransport,
        chain_params: dict[str, Any] | None = None,
    ) -> None:
        self._transport = transport
        self._chain_params = chain_params or POLYGON_CHAIN_PARAMS

    async def get_active_address(self) -> str:
        accounts = await self._call("eth_accounts", [])
        if not accounts:
            accounts = await self._call("eth_requestAccounts", [])
        if not accounts:
            raise SignerUnavailable("Wallet exposes no accounts")
        return Web3.to_checksum_address(accounts[0])

    async def ensure_chain(self, chain_id: int) -> None:
        if await self._current_chain() == chain_id:
            return

        logger.info("signing.switching_chain", target=chain_id)
        try:
            await self._transport.request(
                "wallet_switchEthereumChain", [{"chainId": hex(chain_id)}]
            )
        except WalletRpcError as exc:
            if exc.code in USER_REJECTED_CODES:
                raise SignerRejected("User rejected network switch") from exc
            if exc.code == UNRECOGNIZED_CHAIN_CODE:
                if int(self._chain_params["chainId"], 16) != chain_id:
                    raise WrongChain(chain_id, await self._current_chain()) from exc
                await self._call("wallet_addEthereumChain", [self._chain_params])
            else:
                logger.warning("signing.switch_failed", error=str(exc), code=exc.code)

        actual = await self._current_chain()
        if actual != chain_id:
            raise WrongChain(chain_id, actual)

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> str:
        address = await self.get_active_address()
        signature = await self._call(
            "eth_signTypedData_v4", [address, json.dumps(typed_data)]
        )
        if not signature:
            raise SignerError("Wallet returned an empty signature")
        return to_0x_hex(signature)

    async def send_transaction(self, w3: AsyncWeb3, tx: dict[str, Any]) -> str:
        payload: dict[str, Any] = {
            "from": await self.get_active_address(),
            "to": tx["to"],
            "data": tx.get("data", "0x"),
        }
        for key in ("gas", "value", "gasPrice"):
            if key in tx:
                payload[key] = hex(int(tx[key]))
        tx_hash = await self._call("eth_sendTransaction", [payload])
        return to_0x_hex(tx_hash)

    # ── Internals ────────────────────────────────────────────────

    async def _current_chain(self) -> int:
        raw = await self._call("eth_chainId", [])
        return int(raw, 16) if isinstance(raw, str) else int(raw)

    async def _call(self, method: str, params: list[Any]) -> Any:
        try:
            return await self._transport.request(method, params)
        except WalletRpcError as exc:
            if exc.code in USER_REJECTED_CODES:
                raise SignerRejected(
                    f"User rejected the {method} request", details=str(exc)
                ) from exc
            raise SignerError(f"{method} failed: {exc}", details=exc.code) from exc


def build_signing_capability(
    config: Settings,
    transport: WalletTransport | None = None,
) -> SigningCapability:
    """Pick the capability variant named by ``SIGNER_BACKEND``."""
    if config.SIGNER_BACKEND == "local":
        return LocalKeySigner(config.POLYMARKET_PRIVATE_KEY)
    if transport is None:
        raise SignerUnavailable("SIGNER_BACKEND=external requires a wallet transport")
    return ExternalWalletSigner(transport)
