"""ApprovalAdapter — on-chain balance / approval reads and approval transactions.

Two token standards are involved before the exchange can settle an order:

- collateral (USDC.e, ERC-20): ``approve(exchange, 2**256-1)``
- outcome tokens (Conditional Tokens, ERC-1155): ``setApprovalForAll(exchange, true)``

Both the regular and the neg-risk exchange need their own approval.
Reads go through ``RPCManager.execute`` for failover; transactions are
signed and broadcast by the ``SigningCapability`` so the same code serves a
local key and an external wallet.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from config.settings import Settings
from core.errors import AllowanceError
from models.order import UINT256_MAX
from web3_infra.rpc_manager import RPCError, RPCManager
from web3_infra.signing import SigningCapability

logger = structlog.get_logger("web3_infra.approvals")

# ── ABI fragments ────────────────────────────────────────────────────

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

ERC1155_ABI = [
    {
        "name": "isApprovedForAll",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "setApprovalForAll",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "operator", "type": "address"},
            {"name": "approved", "type": "bool"},
        ],
        "outputs": [],
    },
]

_GWEI = Decimal("1000000000")


@dataclass(frozen=True)
class ApprovalTxResult:
    """A mined approval transaction."""

    tx_hash: str
    block_number: int
    gas_used: int


@dataclass
class ApprovalConfig:
    """Contract addresses and gas policy for approvals."""

    collateral_address: str
    conditional_tokens_address: str
    chain_id: int = 137
    gas_limit: int = 100_000
    max_gas_price_gwei: Decimal = Decimal("500")
    tx_timeout_s: float = 120.0

    @classmethod
    def from_settings(cls, config: Settings) -> ApprovalConfig:
        return cls(
            collateral_address=config.COLLATERAL_TOKEN_ADDRESS,
            conditional_tokens_address=config.CONDITIONAL_TOKENS_ADDRESS,
            chain_id=config.CHAIN_ID,
            gas_limit=config.APPROVAL_GAS_LIMIT,
            max_gas_price_gwei=config.MAX_GAS_PRICE_GWEI,
            tx_timeout_s=config.APPROVAL_TX_TIMEOUT_SECONDS,
        )


class ApprovalAdapter:
    """Reads and writes the approvals the exchange needs.

    Parameters
    ----------
    rpc_manager:
        Started ``RPCManager``.
    capability:
        Signs and broadcasts approval transactions.
    config:
        Token addresses and gas policy.
    """

    def __init__(
        self,
        rpc_manager: RPCManager,
        capability: SigningCapability,
        config: ApprovalConfig,
    ) -> None:
        self._rpc = rpc_manager
        self._capability = capability
        self._config = config

    @property
    def config(self) -> ApprovalConfig:
        return self._config

    async def active_address(self) -> str:
        """Address approval transactions are sent from."""
        return await self._capability.get_active_address()

    # ── Reads ────────────────────────────────────────────────────

    async def collateral_balance(self, owner: str) -> int:
        """Raw collateral balance (6 decimals)."""

        async def _read(w3: AsyncWeb3) -> int:
            token = self._erc20(w3)
            return await token.functions.balanceOf(Web3.to_checksum_address(owner)).call()

        return int(await self._rpc.execute(_read))

    async def collateral_allowance(self, owner: str, spender: str) -> int:
        async def _read(w3: AsyncWeb3) -> int:
            token = self._erc20(w3)
            return await token.functions.allowance(
                Web3.to_checksum_address(owner),
                Web3.to_checksum_address(spender),
            ).call()

        return int(await self._rpc.execute(_read))

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        async def _read(w3: AsyncWeb3) -> bool:
            ctf = self._erc1155(w3)
            return await ctf.functions.isApprovedForAll(
                Web3.to_checksum_address(owner),
                Web3.to_checksum_address(operator),
            ).call()

        return bool(await self._rpc.execute(_read))

    # ── Writes ───────────────────────────────────────────────────

    async def approve_collateral(self, spender: str) -> ApprovalTxResult:
        """Grant *spender* an unlimited collateral allowance.

        Raises
        ------
        GasAbortError
            Gas price above ``max_gas_price_gwei``.
        AllowanceError
            Transaction reverted or was not mined in time.
        """
        spender = Web3.to_checksum_address(spender)
        logger.info("approvals.approve_collateral", spender=spender)

        async def _build(w3: AsyncWeb3, params: dict[str, Any]) -> dict[str, Any]:
            return await self._erc20(w3).functions.approve(
                spender, UINT256_MAX
            ).build_transaction(params)

        return await self._submit(_build, label="approve_collateral")

    async def set_approval_for_all(self, operator: str) -> ApprovalTxResult:
        """Make *operator* an ERC-1155 operator for the sender's outcome tokens."""
        operator = Web3.to_checksum_address(operator)
        logger.info("approvals.set_approval_for_all", operator=operator)

        async def _build(w3: AsyncWeb3, params: dict[str, Any]) -> dict[str, Any]:
            return await self._erc1155(w3).functions.setApprovalForAll(
                operator, True
            ).build_transaction(params)

        return await self._submit(_build, label="set_approval_for_all")

    # ── Internals ────────────────────────────────────────────────

    def _erc20(self, w3: AsyncWeb3) -> Any:
        return w3.eth.contract(
            address=Web3.to_checksum_address(self._config.collateral_address),
            abi=ERC20_ABI,
        )

    def _erc1155(self, w3: AsyncWeb3) -> Any:
        return w3.eth.contract(
            address=Web3.to_checksum_address(self._config.conditional_tokens_address),
            abi=ERC1155_ABI,
        )

    async def _submit(self, build: Any, label: str) -> ApprovalTxResult:
        await self._capability.ensure_chain(self._config.chain_id)
        sender = await self._capability.get_active_address()

        async def _send(w3: AsyncWeb3) -> str:
            params = await self._base_tx_params(w3, sender)
            tx = await build(w3, params)
            return await self._capability.send_transaction(w3, tx)

        tx_hash = await self._rpc.execute(_send)
        logger.info("approvals.tx_sent", action=label, tx_hash=tx_hash)
        return await self._wait_for_receipt(tx_hash, label)

    async def _base_tx_params(self, w3: AsyncWeb3, sender: str) -> dict[str, Any]:
        gas_price = await w3.eth.gas_price
        gas_price_gwei = Decimal(str(gas_price)) / _GWEI
        if gas_price_gwei > self._config.max_gas_price_gwei:
            raise GasAbortError(
                f"Gas price {gas_price_gwei} Gwei exceeds maximum "
                f"{self._config.max_gas_price_gwei} Gwei"
            )
        nonce = await w3.eth.get_transaction_count(sender)
        return {
            "from": sender,
            "nonce": nonce,
            "gas": self._config.gas_limit,
            "gasPrice": gas_price,
            "chainId": self._config.chain_id,
        }

    async def _wait_for_receipt(self, tx_hash: str, label: str) -> ApprovalTxResult:
        timeout = self._config.tx_timeout_s

        async def _wait(w3: AsyncWeb3) -> Any:
            try:
                return await asyncio.wait_for(
                    w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout),
                    timeout=timeout + 10,
                )
            except (asyncio.TimeoutError, TimeExhausted) as exc:
                logger.error("approvals.tx_timeout", action=label, tx_hash=tx_hash)
                raise AllowanceError(
                    f"{label}: no receipt within {timeout}s",
                    tx_hash=tx_hash,
                ) from exc

        try:
            receipt = await self._rpc.execute(_wait)
        except RPCError as exc:
            raise AllowanceError(
                f"{label}: receipt lookup failed on every endpoint",
                tx_hash=tx_hash,
                details=exc.details,
            ) from exc

        if receipt.get("status", 0) != 1:
            logger.error("approvals.tx_reverted", action=label, tx_hash=tx_hash)
            raise AllowanceError(f"{label}: transaction reverted", tx_hash=tx_hash)

        result = ApprovalTxResult(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber", 0),
            gas_used=receipt.get("gasUsed", 0),
        )
        logger.info(
            "approvals.tx_confirmed",
            action=label,
            tx_hash=tx_hash,
            block=result.block_number,
            gas_used=result.gas_used,
        )
        return result


# ── Exceptions ───────────────────────────────────────────────────────


class GasAbortError(AllowanceError):
    """Raised when gas price exceeds the configured maximum."""
