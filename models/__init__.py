"""Signing core — models package."""

from .allowance import AllowanceReport, AllowanceState, AllowanceStatus, AssetType
from .auth import ApiCredentials, AuthAssertion
from .order import (
    ZERO_ADDRESS,
    ComputedAmounts,
    OrderIntent,
    OrderType,
    Side,
    SignatureType,
    SignedOrder,
)

__all__ = [
    "AllowanceReport",
    "AllowanceState",
    "AllowanceStatus",
    "ApiCredentials",
    "AssetType",
    "AuthAssertion",
    "ComputedAmounts",
    "OrderIntent",
    "OrderType",
    "Side",
    "SignatureType",
    "SignedOrder",
    "ZERO_ADDRESS",
]
