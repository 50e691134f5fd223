"""Amount codec — (side, price, size) to integer maker/taker amounts.

The settlement contract re-derives these legs with its own fixed-point
arithmetic and rejects anything that disagrees, so the truncation order is
fixed: quantity to 2 decimals first, then the price-derived leg to 4
decimals, then both legs scaled by 10^6 and floored.

All operations use ``Decimal`` exclusively; floats are never accepted.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Union

from models.order import ComputedAmounts, Side

TOKEN_DECIMALS = 6
TOKEN_SCALE = Decimal(10) ** TOKEN_DECIMALS

SIZE_PLACES = 2
NOTIONAL_PLACES = 4

Number = Union[Decimal, int, str]


def truncate(value: Decimal, places: int) -> Decimal:
    """Floor a non-negative *value* to *places* decimals (never rounds up)."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


def to_token_units(value: Decimal) -> int:
    """Scale a decimal amount by 10^6 and floor to an integer."""
    return int((value * TOKEN_SCALE).to_integral_value(rounding=ROUND_DOWN))


def compute_amounts(side: Side | str, price: Number, size: Number) -> ComputedAmounts:
    """Compute maker/taker amounts for an order.

    Parameters
    ----------
    side:
        ``Side.BUY`` or ``Side.SELL`` (or their string values).
    price:
        Price per share in (0, 1].
    size:
        Number of shares (> 0).

    Returns
    -------
    ComputedAmounts
        BUY: maker pays collateral, taker leg is the shares received.
        SELL: maker gives shares, taker leg is the collateral received.

    Raises
    ------
    TypeError
        If *price* or *size* is a float.
    ValueError
        If *price* is outside (0, 1] or *size* is not positive.
    """
    side = Side(side)
    price_d = _to_decimal(price, "price")
    size_d = _to_decimal(size, "size")

    if price_d <= 0 or price_d > 1:
        raise ValueError(f"price must be in (0, 1], got {price_d}")
    if size_d <= 0:
        raise ValueError(f"size must be positive, got {size_d}")

    shares = truncate(size_d, SIZE_PLACES)
    notional = truncate(shares * price_d, NOTIONAL_PLACES)

    if side is Side.BUY:
        maker, taker = notional, shares
    else:
        maker, taker = shares, notional

    return ComputedAmounts(
        maker_amount=str(to_token_units(maker)),
        taker_amount=str(to_token_units(taker)),
    )


# ── Internal validators ──────────────────────────────────────────────


def _to_decimal(value: Number, name: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{name} must be a Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"{name} is not a number: {value!r}") from exc
    else:
        raise TypeError(f"{name} must be a Decimal, int or str, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"{name} must be finite, got {result}")
    return result
