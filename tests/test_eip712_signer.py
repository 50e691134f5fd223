"""Tests for web3_infra/eip712_signer.py."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import (
    ADDRESS,
    CTF_EXCHANGE,
    NEG_RISK_EXCHANGE,
    OTHER_ADDRESS,
    make_intent_data,
)
from core.errors import AddressMismatch, WrongChain
from execution.amounts import compute_amounts
from models.order import OrderIntent, SignatureType
from web3_infra.eip712_signer import (
    CLOB_AUTH_MESSAGE,
    TypedDataSigner,
    build_auth_typed_data,
    build_order_message,
    build_order_typed_data,
    generate_salt,
    recover_typed_data_signer,
)
from web3_infra.signing import LocalKeySigner, SigningCapability


def _intent(**overrides) -> OrderIntent:
    return OrderIntent(**make_intent_data(**overrides))


def _mock_capability(address: str = ADDRESS) -> AsyncMock:
    capability = AsyncMock(spec=SigningCapability)
    capability.get_active_address.return_value = address
    capability.sign_typed_data.return_value = "0x" + "11" * 65
    return capability


class TestTypedData:

    def test_auth_document(self) -> None:
        doc = build_auth_typed_data(ADDRESS.lower(), "1700000000")
        assert doc["primaryType"] == "ClobAuth"
        assert doc["domain"] == {"name": "ClobAuthDomain", "version": "1", "chainId": 137}
        assert doc["message"] == {
            "address": ADDRESS,
            "timestamp": "1700000000",
            "nonce": 0,
            "message": CLOB_AUTH_MESSAGE,
        }
        assert "verifyingContract" not in doc["domain"]

    def test_order_field_order(self) -> None:
        doc = build_order_typed_data({}, CTF_EXCHANGE)
        assert [f["name"] for f in doc["types"]["Order"]] == [
            "salt", "maker", "signer", "taker", "tokenId", "makerAmount",
            "takerAmount", "expiration", "nonce", "feeRateBps", "side", "signatureType",
        ]
        assert doc["types"]["Order"][-2:] == [
            {"name": "side", "type": "uint8"},
            {"name": "signatureType", "type": "uint8"},
        ]
        assert doc["domain"] == {
            "name": "Polymarket CTF Exchange",
            "version": "1",
            "chainId": 137,
            "verifyingContract": CTF_EXCHANGE,
        }

    def test_order_message(self) -> None:
        intent = _intent(side="SELL", price="0.33", size="10")
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        message = build_order_message(intent, amounts, 123, 4, SignatureType.POLY_PROXY)
        assert message["taker"] == "0x0000000000000000000000000000000000000000"
        assert message["side"] == 1
        assert message["signatureType"] == 1
        assert message["makerAmount"] == 10_000_000
        assert message["takerAmount"] == 3_300_000
        assert message["tokenId"] == int(intent.token_id)
        assert message["nonce"] == 4

    def test_salt_is_js_safe(self) -> None:
        for _ in range(100):
            salt = generate_salt()
            assert 0 <= salt < 2**53


class TestTypedDataSigner:

    @pytest.mark.asyncio
    async def test_sign_order_recovers_signer(self, local_signer: LocalKeySigner) -> None:
        signer = TypedDataSigner(local_signer)
        intent = _intent()
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        signature = await signer.sign_order(
            intent, amounts, 987654321, 0, verifying_contract=CTF_EXCHANGE
        )
        message = build_order_message(intent, amounts, 987654321, 0, SignatureType.EOA)
        doc = build_order_typed_data(message, CTF_EXCHANGE)
        assert recover_typed_data_signer(doc, signature) == ADDRESS

    @pytest.mark.asyncio
    async def test_domain_binds_signature(self, local_signer: LocalKeySigner) -> None:
        signer = TypedDataSigner(local_signer)
        intent = _intent(neg_risk=True)
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        signature = await signer.sign_order(
            intent, amounts, 1, 0, verifying_contract=NEG_RISK_EXCHANGE
        )
        message = build_order_message(intent, amounts, 1, 0, SignatureType.EOA)
        wrong_domain = build_order_typed_data(message, CTF_EXCHANGE)
        assert recover_typed_data_signer(wrong_domain, signature) != ADDRESS

    @pytest.mark.asyncio
    async def test_address_mismatch_before_sign_request(self) -> None:
        capability = _mock_capability(OTHER_ADDRESS)
        signer = TypedDataSigner(capability)
        intent = _intent()
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        with pytest.raises(AddressMismatch) as exc_info:
            await signer.sign_order(intent, amounts, 1, 0, verifying_contract=CTF_EXCHANGE)
        assert exc_info.value.expected == ADDRESS
        assert exc_info.value.actual == OTHER_ADDRESS
        capability.sign_typed_data.assert_not_awaited()
        capability.ensure_chain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_address_compare_is_case_insensitive(self) -> None:
        capability = _mock_capability(ADDRESS.lower())
        signer = TypedDataSigner(capability)
        intent = _intent()
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        assert await signer.sign_order(
            intent, amounts, 1, 0, verifying_contract=CTF_EXCHANGE
        ) == "0x" + "11" * 65

    @pytest.mark.asyncio
    async def test_wrong_chain_propagates(self) -> None:
        capability = _mock_capability()
        capability.ensure_chain.side_effect = WrongChain(137, 1)
        signer = TypedDataSigner(capability)
        intent = _intent()
        amounts = compute_amounts(intent.side, intent.price, intent.size)
        with pytest.raises(WrongChain):
            await signer.sign_order(intent, amounts, 1, 0, verifying_contract=CTF_EXCHANGE)
        capability.sign_typed_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sign_auth(self, local_signer: LocalKeySigner) -> None:
        signer = TypedDataSigner(local_signer)
        assertion = await signer.sign_auth(ADDRESS.lower(), timestamp="1700000000")
        assert assertion.address == ADDRESS
        assert assertion.timestamp == "1700000000"
        assert assertion.nonce == 0
        doc = build_auth_typed_data(ADDRESS, "1700000000")
        assert recover_typed_data_signer(doc, assertion.signature) == ADDRESS

    @pytest.mark.asyncio
    async def test_sign_auth_default_timestamp(self, local_signer: LocalKeySigner) -> None:
        assertion = await TypedDataSigner(local_signer).sign_auth(ADDRESS)
        assert assertion.timestamp.isdigit()

    @pytest.mark.asyncio
    async def test_sign_auth_mismatch(self, local_signer: LocalKeySigner) -> None:
        with pytest.raises(AddressMismatch):
            await TypedDataSigner(local_signer).sign_auth(OTHER_ADDRESS)
