"""Tests for web3_infra/approvals.py — RPC, contracts and wallet faked."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import TimeExhausted

from conftest import ADDRESS, CTF_EXCHANGE, NEG_RISK_EXCHANGE
from config.settings import Settings
from core.errors import AllowanceError
from web3_infra.approvals import (
    ApprovalAdapter,
    ApprovalConfig,
    ApprovalTxResult,
    GasAbortError,
)
from web3_infra.rpc_manager import RPCError
from web3_infra.signing import SigningCapability

USDC_E = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
CTF = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
TX_HASH = "0x" + "aa" * 32


class FakeEth:
    """Just enough of ``AsyncWeb3.eth`` for the adapter."""

    def __init__(self) -> None:
        self.gas_price_wei = 30 * 10**9
        self.receipt: dict[str, Any] | Exception = {
            "status": 1, "blockNumber": 123, "gasUsed": 46_000,
        }
        self.contracts: dict[str, MagicMock] = {}

    @property
    def gas_price(self):
        async def _value() -> int:
            return self.gas_price_wei

        return _value()

    async def get_transaction_count(self, address: str) -> int:
        return 7

    async def wait_for_transaction_receipt(self, tx_hash: str, timeout: float) -> dict:
        if isinstance(self.receipt, Exception):
            raise self.receipt
        return self.receipt

    def contract(self, address: str, abi: list) -> MagicMock:
        if address not in self.contracts:
            contract = MagicMock()
            for fn in ("approve", "setApprovalForAll"):
                getattr(contract.functions, fn).return_value.build_transaction = AsyncMock(
                    side_effect=lambda params, to=address: {**params, "to": to, "data": "0x"}
                )
            self.contracts[address] = contract
        return self.contracts[address]


class FakeRPC:
    """Runs every callback against one fake Web3 instance."""

    def __init__(self) -> None:
        self.w3 = MagicMock()
        self.w3.eth = FakeEth()
        self.fail_receipt = False

    async def execute(self, fn):
        if self.fail_receipt and fn.__name__ == "_wait":
            raise RPCError("All 2 RPC endpoints failed", last_error=ConnectionError("down"))
        return await fn(self.w3)


@pytest.fixture
def rpc() -> FakeRPC:
    return FakeRPC()


@pytest.fixture
def capability() -> AsyncMock:
    cap = AsyncMock(spec=SigningCapability)
    cap.get_active_address.return_value = ADDRESS
    cap.send_transaction.return_value = TX_HASH
    return cap


@pytest.fixture
def adapter(rpc: FakeRPC, capability: AsyncMock) -> ApprovalAdapter:
    config = ApprovalConfig(
        collateral_address=USDC_E,
        conditional_tokens_address=CTF,
        max_gas_price_gwei=Decimal("100"),
    )
    return ApprovalAdapter(rpc, capability, config)


class TestApprovalConfig:

    def test_from_settings(self) -> None:
        config = ApprovalConfig.from_settings(Settings(MAX_GAS_PRICE_GWEI=Decimal("50")))
        assert config.collateral_address == USDC_E
        assert config.conditional_tokens_address == CTF
        assert config.chain_id == 137
        assert config.max_gas_price_gwei == Decimal("50")


class TestReads:

    @pytest.mark.asyncio
    async def test_collateral_balance(self, adapter: ApprovalAdapter, rpc: FakeRPC) -> None:
        token = rpc.w3.eth.contract(USDC_E, [])
        token.functions.balanceOf.return_value.call = AsyncMock(return_value=5_000_000)
        assert await adapter.collateral_balance(ADDRESS.lower()) == 5_000_000
        token.functions.balanceOf.assert_called_with(ADDRESS)

    @pytest.mark.asyncio
    async def test_collateral_allowance(self, adapter: ApprovalAdapter, rpc: FakeRPC) -> None:
        token = rpc.w3.eth.contract(USDC_E, [])
        token.functions.allowance.return_value.call = AsyncMock(return_value=2**256 - 1)
        assert await adapter.collateral_allowance(ADDRESS, CTF_EXCHANGE) == 2**256 - 1
        token.functions.allowance.assert_called_with(ADDRESS, CTF_EXCHANGE)

    @pytest.mark.asyncio
    async def test_is_approved_for_all(self, adapter: ApprovalAdapter, rpc: FakeRPC) -> None:
        ctf = rpc.w3.eth.contract(CTF, [])
        ctf.functions.isApprovedForAll.return_value.call = AsyncMock(return_value=False)
        assert await adapter.is_approved_for_all(ADDRESS, NEG_RISK_EXCHANGE) is False

    @pytest.mark.asyncio
    async def test_active_address(self, adapter: ApprovalAdapter, capability: AsyncMock) -> None:
        assert await adapter.active_address() == ADDRESS
        capability.get_active_address.assert_awaited_once()


class TestWrites:

    @pytest.mark.asyncio
    async def test_approve_collateral(
        self, adapter: ApprovalAdapter, rpc: FakeRPC, capability: AsyncMock
    ) -> None:
        result = await adapter.approve_collateral(CTF_EXCHANGE.lower())

        assert result == ApprovalTxResult(tx_hash=TX_HASH, block_number=123, gas_used=46_000)
        capability.ensure_chain.assert_awaited_once_with(137)
        token = rpc.w3.eth.contracts[USDC_E]
        token.functions.approve.assert_called_once_with(CTF_EXCHANGE, 2**256 - 1)

        _, tx = capability.send_transaction.await_args.args
        assert tx["from"] == ADDRESS
        assert tx["to"] == USDC_E
        assert tx["nonce"] == 7
        assert tx["gas"] == 100_000
        assert tx["gasPrice"] == 30 * 10**9
        assert tx["chainId"] == 137

    @pytest.mark.asyncio
    async def test_set_approval_for_all(
        self, adapter: ApprovalAdapter, rpc: FakeRPC, capability: AsyncMock
    ) -> None:
        result = await adapter.set_approval_for_all(NEG_RISK_EXCHANGE)
        assert result.tx_hash == TX_HASH
        ctf = rpc.w3.eth.contracts[CTF]
        ctf.functions.setApprovalForAll.assert_called_once_with(NEG_RISK_EXCHANGE, True)
        _, tx = capability.send_transaction.await_args.args
        assert tx["to"] == CTF

    @pytest.mark.asyncio
    async def test_gas_abort(
        self, adapter: ApprovalAdapter, rpc: FakeRPC, capability: AsyncMock
    ) -> None:
        rpc.w3.eth.gas_price_wei = 150 * 10**9
        with pytest.raises(GasAbortError):
            await adapter.approve_collateral(CTF_EXCHANGE)
        capability.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reverted(self, adapter: ApprovalAdapter, rpc: FakeRPC) -> None:
        rpc.w3.eth.receipt = {"status": 0, "blockNumber": 1, "gasUsed": 1}
        with pytest.raises(AllowanceError) as exc_info:
            await adapter.approve_collateral(CTF_EXCHANGE)
        assert exc_info.value.tx_hash == TX_HASH
        assert "reverted" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, adapter: ApprovalAdapter, rpc: FakeRPC) -> None:
        rpc.w3.eth.receipt = TimeExhausted("not mined")
        with pytest.raises(AllowanceError) as exc_info:
            await adapter.set_approval_for_all(CTF_EXCHANGE)
        assert exc_info.value.tx_hash == TX_HASH
        assert not isinstance(exc_info.value, GasAbortError)

    @pytest.mark.asyncio
    async def test_receipt_lookup_failed_everywhere(
        self, adapter: ApprovalAdapter, rpc: FakeRPC
    ) -> None:
        rpc.fail_receipt = True
        with pytest.raises(AllowanceError) as exc_info:
            await adapter.approve_collateral(CTF_EXCHANGE)
        assert exc_info.value.tx_hash == TX_HASH
        assert isinstance(exc_info.value.__cause__, RPCError)
