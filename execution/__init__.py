"""Signing core — execution package."""

from .allowance import AllowanceOrchestrator
from .amounts import compute_amounts, to_token_units, truncate
from .order_builder import OrderBuilder

__all__ = [
    "AllowanceOrchestrator",
    "OrderBuilder",
    "compute_amounts",
    "to_token_units",
    "truncate",
]
