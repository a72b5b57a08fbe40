"""Selectors for the replenishment kernel (read side)."""

from replenishment_kernel.selectors.inventory_selector import InventorySelector
from replenishment_kernel.selectors.request_selector import RequestListing, RequestSelector
from replenishment_kernel.selectors.stats_selector import StatsSelector

__all__ = [
    "InventorySelector",
    "RequestListing",
    "RequestSelector",
    "StatsSelector",
]
