"""TypedDataSigner — EIP-712 payloads for L1 auth and for CTF Exchange orders.

Two schemas, two domains:

- ``ClobAuth`` under ``ClobAuthDomain`` (no verifying contract) proves control
  of a wallet at a timestamp; used once to mint L2 API credentials.
- ``Order`` under ``Polymarket CTF Exchange`` with the regular or neg-risk
  exchange as verifying contract; this is what settles on-chain.

The builders return complete ``eth_signTypedData_v4`` documents so the same
dict can go to a local key or over the wire to an external wallet.
"""

from __future__ import annotations

import random
import time
from typing import Any

import structlog
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from core.errors import AddressMismatch
from core.logger import truncate
from models.auth import AuthAssertion
from models.order import ZERO_ADDRESS, ComputedAmounts, OrderIntent, SignatureType
from web3_infra.signing import SigningCapability, to_0x_hex

logger = structlog.get_logger("web3_infra.eip712_signer")

POLYGON_CHAIN_ID = 137

CLOB_AUTH_DOMAIN_NAME = "ClobAuthDomain"
CLOB_AUTH_VERSION = "1"
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"

EXCHANGE_DOMAIN_NAME = "Polymarket CTF Exchange"
EXCHANGE_DOMAIN_VERSION = "1"

AUTH_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ],
}

ORDER_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "signer", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "makerAmount", "type": "uint256"},
        {"name": "takerAmount", "type": "uint256"},
        {"name": "expiration", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "feeRateBps", "type": "uint256"},
        {"name": "side", "type": "uint8"},
        {"name": "signatureType", "type": "uint8"},
    ],
}


def generate_salt() -> int:
    """``round(random() * now_ms)``: ~13-15 digits, always below 2**53.

    The order-entry endpoint parses the salt as a plain number, so it stays
    small on purpose.  Uniqueness per signer is all that is required.
    """
    return round(random.random() * time.time() * 1000)


def build_auth_typed_data(
    address: str,
    timestamp: str,
    nonce: int = 0,
    chain_id: int = POLYGON_CHAIN_ID,
) -> dict[str, Any]:
    return {
        "types": AUTH_TYPES,
        "primaryType": "ClobAuth",
        "domain": {
            "name": CLOB_AUTH_DOMAIN_NAME,
            "version": CLOB_AUTH_VERSION,
            "chainId": chain_id,
        },
        "message": {
            "address": Web3.to_checksum_address(address),
            "timestamp": timestamp,
            "nonce": nonce,
            "message": CLOB_AUTH_MESSAGE,
        },
    }


def build_order_message(
    intent: OrderIntent,
    amounts: ComputedAmounts,
    salt: int,
    nonce: int,
    signature_type: int,
) -> dict[str, Any]:
    """The ``Order`` struct with every uint as a Python int."""
    return {
        "salt": int(salt),
        "maker": intent.maker,
        "signer": intent.signer,
        "taker": ZERO_ADDRESS,
        "tokenId": int(intent.token_id),
        "makerAmount": amounts.maker_units,
        "takerAmount": amounts.taker_units,
        "expiration": intent.expiration,
        "nonce": int(nonce),
        "feeRateBps": intent.fee_rate_bps,
        "side": intent.side.as_uint8,
        "signatureType": int(signature_type),
    }


def build_order_typed_data(
    message: dict[str, Any],
    verifying_contract: str,
    chain_id: int = POLYGON_CHAIN_ID,
) -> dict[str, Any]:
    return {
        "types": ORDER_TYPES,
        "primaryType": "Order",
        "domain": {
            "name": EXCHANGE_DOMAIN_NAME,
            "version": EXCHANGE_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(verifying_contract),
        },
        "message": message,
    }


def recover_typed_data_signer(typed_data: dict[str, Any], signature: str) -> str:
    """Address that produced *signature* over *typed_data*."""
    signable = encode_typed_data(full_message=typed_data)
    return Account.recover_message(signable, signature=signature)


class TypedDataSigner:
    """Signs auth assertions and orders through a ``SigningCapability``.

    Parameters
    ----------
    capability:
        Local key or external wallet.
    chain_id:
        Chain named in both domains.  137 (Polygon) in production.
    """

    def __init__(
        self,
        capability: SigningCapability,
        chain_id: int = POLYGON_CHAIN_ID,
    ) -> None:
        self._capability = capability
        self._chain_id = chain_id

    @property
    def capability(self) -> SigningCapability:
        return self._capability

    async def sign_auth(
        self, address: str, timestamp: str | None = None
    ) -> AuthAssertion:
        """Sign a ``ClobAuth`` assertion for *address*.

        Raises
        ------
        WrongChain, SignerRejected, SignerUnavailable
            From the capability.
        AddressMismatch
            If the capability signs for a different address.
        """
        address = Web3.to_checksum_address(address)
        await self._check_signer(address)
        await self._capability.ensure_chain(self._chain_id)

        timestamp = timestamp or str(int(time.time()))
        typed_data = build_auth_typed_data(address, timestamp, 0, self._chain_id)
        signature = await self._capability.sign_typed_data(typed_data)

        logger.info("eip712_signer.auth_signed", address=address, timestamp=timestamp)
        return AuthAssertion(
            address=address,
            timestamp=timestamp,
            nonce=0,
            signature=to_0x_hex(signature),
        )

    async def sign_order(
        self,
        intent: OrderIntent,
        amounts: ComputedAmounts,
        salt: int,
        nonce: int,
        signature_type: int = SignatureType.EOA,
        *,
        verifying_contract: str,
    ) -> str:
        """Sign the ``Order`` struct.

        The active address is compared with ``intent.signer`` before any
        typed-data request reaches the capability.

        Raises
        ------
        AddressMismatch
            Capability's active address differs from ``intent.signer``.
        WrongChain, SignerRejected, SignerUnavailable
            From the capability.
        """
        await self._check_signer(intent.signer)
        await self._capability.ensure_chain(self._chain_id)

        message = build_order_message(intent, amounts, salt, nonce, signature_type)
        typed_data = build_order_typed_data(message, verifying_contract, self._chain_id)
        signature = await self._capability.sign_typed_data(typed_data)

        logger.debug(
            "eip712_signer.order_signed",
            token_id=truncate(intent.token_id, 20),
            side=intent.side.value,
            verifying_contract=verifying_contract,
        )
        return to_0x_hex(signature)

    async def _check_signer(self, expected: str) -> None:
        active = await self._capability.get_active_address()
        if active.lower() != expected.lower():
            logger.error(
                "eip712_signer.address_mismatch",
                expected=expected,
                active=active,
            )
            raise AddressMismatch(expected, active)
