"""
Pure inventory predicates.

"Low stock" is derived, never stored: a record is low when its on-hand
quantity is at or below its threshold.  A negative quantity means the ledger
lags physical reality (stock shipped that the ledger never saw arrive).
"""

from __future__ import annotations

from typing import Protocol


class _StockLevel(Protocol):
    quantity: int
    low_stock_threshold: int


def is_low_stock(record: _StockLevel) -> bool:
    """True when ``quantity <= low_stock_threshold``."""
    return record.quantity <= record.low_stock_threshold


def is_negative_stock(record: _StockLevel) -> bool:
    return record.quantity < 0
