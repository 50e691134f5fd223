"""Order — trade intent, computed amounts and the signed order sent to the CLOB."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_MAX = 2**256 - 1


class Side(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def as_uint8(self) -> int:
        """Numeric value used in the signed struct (0=BUY, 1=SELL)."""
        return 0 if self is Side.BUY else 1


class OrderType(str, Enum):
    """Time-in-force."""

    GTC = "GTC"  # Good-Til-Cancelled
    GTD = "GTD"  # Good-Til-Date
    FOK = "FOK"  # Fill-Or-Kill
    FAK = "FAK"  # Fill-And-Kill


class SignatureType(IntEnum):
    """How the exchange verifies the order signature."""

    EOA = 0
    POLY_PROXY = 1
    POLY_GNOSIS_SAFE = 2


def checksum_address(value: str, name: str = "address") -> str:
    """Validate a 20-byte hex address and return its checksum form.

    All-lower and all-upper hex are accepted as-is; mixed case must carry a
    valid EIP-55 checksum.
    """
    if not isinstance(value, str) or not Web3.is_address(value.lower()):
        raise ValueError(f"{name} is not a valid 20-byte address: {value!r}")
    digits = value[2:] if value[:2].lower() == "0x" else value
    if digits != digits.lower() and digits != digits.upper():
        if not Web3.is_checksum_address(value):
            raise ValueError(f"{name} has an invalid EIP-55 checksum: {value!r}")
    return Web3.to_checksum_address(value)


class OrderIntent(BaseModel):
    """What the caller wants to trade.  Validated on construction."""

    model_config = ConfigDict(frozen=True)

    token_id: str = Field(..., min_length=1, description="uint256 as decimal string")
    side: Side
    price: Decimal = Field(..., gt=0, le=1, description="Price in (0, 1]")
    size: Decimal = Field(..., gt=0, description="Size in shares (> 0)")
    maker: str = Field(..., description="Funder address")
    signer: str = Field(..., description="Address that signs the order")

    expiration: int = Field(default=0, ge=0, description="Unix seconds, GTD only")
    fee_rate_bps: int = Field(default=0, ge=0)
    neg_risk: bool = False
    order_type: OrderType = OrderType.GTC
    nonce: Optional[int] = Field(default=None, ge=0, description="Skip the nonce lookup when set")

    @field_validator("token_id")
    @classmethod
    def token_id_is_uint256(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit():
            raise ValueError("token_id must be a non-negative decimal integer string")
        if int(v) > UINT256_MAX:
            raise ValueError("token_id exceeds uint256")
        return str(int(v))

    @field_validator("maker", "signer")
    @classmethod
    def valid_address(cls, v: str, info) -> str:
        return checksum_address(v, info.field_name)

    @model_validator(mode="after")
    def expiration_matches_order_type(self) -> OrderIntent:
        if self.order_type is OrderType.GTD:
            if self.expiration == 0:
                raise ValueError("GTD orders require a non-zero expiration")
        elif self.expiration != 0:
            raise ValueError(f"expiration must be 0 for {self.order_type.value} orders")
        return self


class ComputedAmounts(BaseModel):
    """Maker / taker legs in the asset's smallest unit (scale 10^6)."""

    model_config = ConfigDict(frozen=True)

    maker_amount: str
    taker_amount: str

    @property
    def maker_units(self) -> int:
        return int(self.maker_amount)

    @property
    def taker_units(self) -> int:
        return int(self.taker_amount)


class SignedOrder(BaseModel):
    """A fully signed order.  Created once per submission attempt, never reused.

    Every numeric field is a decimal string: salts, token ids and amounts can
    exceed the 53-bit range of a JSON number on the receiving side.
    """

    model_config = ConfigDict(frozen=True)

    salt: str
    maker: str
    signer: str
    taker: str = ZERO_ADDRESS
    token_id: str
    maker_amount: str
    taker_amount: str
    expiration: str
    nonce: str
    fee_rate_bps: str
    side: Side
    signature_type: int
    signature: str

    verifying_contract: str
    neg_risk: bool = False
    order_type: OrderType = OrderType.GTC

    def to_dict(self) -> dict[str, Any]:
        """camelCase order object as the exchange documents it."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": self.maker_amount,
            "takerAmount": self.taker_amount,
            "expiration": self.expiration,
            "nonce": self.nonce,
            "feeRateBps": self.fee_rate_bps,
            "side": self.side.value,
            "signatureType": self.signature_type,
            "signature": self.signature,
        }

    def to_api_payload(
        self,
        owner: str,
        order_type: OrderType | None = None,
        defer_exec: bool = False,
    ) -> dict[str, Any]:
        """Body for ``POST /order``.

        *order_type* defaults to the one the order was built for.  ``salt``
        goes out as a JSON integer; the order-entry endpoint parses it as a
        number, which is why salts are kept below 2**53.
        """
        order = self.to_dict()
        order["salt"] = int(self.salt)
        return {
            "deferExec": defer_exec,
            "order": order,
            "owner": owner,
            "orderType": OrderType(order_type or self.order_type).value,
        }
