"""OrderBuilder — from trade intent to a signed, submittable order.

One linear pass per submission::

    Validate → ResolveNonce → ComputeAmounts → SelectDomain → Sign → Emit

Nothing leaves the process before the signature request: validation, the
amount computation and the domain choice are local, and the only network
call (the nonce lookup) falls back to 0 instead of failing.  Each call
produces a fresh salt, so a ``SignedOrder`` is never reused across attempts.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

import structlog
from pydantic import ValidationError
from web3 import Web3

from core.errors import InvalidParameters, ProtocolMismatchError
from core.logger import truncate
from data.nonce_resolver import NonceResolver
from execution.amounts import compute_amounts
from models.order import ComputedAmounts, OrderIntent, SignatureType, SignedOrder
from web3_infra.eip712_signer import TypedDataSigner, generate_salt

logger = structlog.get_logger("execution.order_builder")


class OrderBuilder:
    """Builds and signs CTF Exchange orders.

    Parameters
    ----------
    signer:
        EIP-712 signer bound to a signing capability.
    nonce_resolver:
        Exchange nonce lookup for the maker.
    exchange_address:
        Verifying contract for regular markets.
    neg_risk_exchange_address:
        Verifying contract for neg-risk markets.
    signature_type:
        How the exchange verifies the signature (EOA, proxy, safe).
    salt_factory:
        Source of per-order salts.
    """

    def __init__(
        self,
        signer: TypedDataSigner,
        nonce_resolver: NonceResolver,
        exchange_address: str,
        neg_risk_exchange_address: str,
        signature_type: int = SignatureType.EOA,
        salt_factory: Callable[[], int] = generate_salt,
    ) -> None:
        exchange = Web3.to_checksum_address(exchange_address)
        neg_risk_exchange = Web3.to_checksum_address(neg_risk_exchange_address)
        if exchange == neg_risk_exchange:
            raise ProtocolMismatchError(
                "Regular and neg-risk exchanges share one address",
                field="verifyingContract",
                details=exchange,
            )
        self._signer = signer
        self._nonce_resolver = nonce_resolver
        self._exchange = exchange
        self._neg_risk_exchange = neg_risk_exchange
        self._signature_type = SignatureType(signature_type)
        self._salt_factory = salt_factory

    def verifying_contract(self, neg_risk: bool) -> str:
        """Exchange whose EIP-712 domain the order is signed under."""
        return self._neg_risk_exchange if neg_risk else self._exchange

    async def build(self, intent: OrderIntent | Mapping[str, Any]) -> SignedOrder:
        """Validate, price, sign and return an order.

        Raises
        ------
        InvalidParameters
            Intent fails validation.  No network call was made.
        ProtocolMismatchError
            An amount leg truncates to zero.
        AddressMismatch, SignerRejected, SignerUnavailable, WrongChain
            From the signing step.
        """
        intent = self.validate(intent)

        if intent.nonce is not None:
            nonce = intent.nonce
        else:
            nonce = await self._nonce_resolver.resolve_nonce(intent.maker)

        amounts = compute_amounts(intent.side, intent.price, intent.size)
        self._check_amounts(intent, amounts)

        verifying_contract = self.verifying_contract(intent.neg_risk)
        salt = self._salt_factory()

        signature = await self._signer.sign_order(
            intent,
            amounts,
            salt,
            nonce,
            self._signature_type,
            verifying_contract=verifying_contract,
        )

        order = SignedOrder(
            salt=str(salt),
            maker=intent.maker,
            signer=intent.signer,
            token_id=intent.token_id,
            maker_amount=amounts.maker_amount,
            taker_amount=amounts.taker_amount,
            expiration=str(intent.expiration),
            nonce=str(nonce),
            fee_rate_bps=str(intent.fee_rate_bps),
            side=intent.side,
            signature_type=int(self._signature_type),
            signature=signature,
            verifying_contract=verifying_contract,
            neg_risk=intent.neg_risk,
            order_type=intent.order_type,
        )

        logger.info(
            "order_builder.order_signed",
            token_id=truncate(intent.token_id, 20),
            side=intent.side.value,
            price=str(intent.price),
            size=str(intent.size),
            maker_amount=order.maker_amount,
            taker_amount=order.taker_amount,
            nonce=nonce,
            neg_risk=intent.neg_risk,
        )
        return order

    @staticmethod
    def validate(intent: OrderIntent | Mapping[str, Any]) -> OrderIntent:
        """Coerce *intent* into an ``OrderIntent`` or raise ``InvalidParameters``."""
        if isinstance(intent, OrderIntent):
            return intent
        try:
            return OrderIntent.model_validate(dict(intent))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or None
            logger.warning(
                "order_builder.invalid_intent",
                field=field,
                error=first["msg"],
            )
            raise InvalidParameters(
                f"Invalid order intent: {first['msg']}",
                field=field,
                details=exc.errors(),
            ) from exc

    @staticmethod
    def _check_amounts(intent: OrderIntent, amounts: ComputedAmounts) -> None:
        if amounts.maker_units == 0 or amounts.taker_units == 0:
            raise ProtocolMismatchError(
                f"Order truncates to a zero leg: maker={amounts.maker_amount} "
                f"taker={amounts.taker_amount}",
                field="size",
                details={"price": str(intent.price), "size": str(intent.size)},
            )
