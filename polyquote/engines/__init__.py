"""
PolyQuote — Engines
====================
OrderBook / ArbitrageAnalyzer (complete-set mispricing)
MarketMakerEngine (inventory-skewed bid quoting)
VirtualOrderManager (paper venue with simulated latency)
"""

from .order_book import OrderBook
from .arbitrage import ArbitrageAnalyzer
from .market_maker import (
    MarketMakerEngine,
    MMConfig,
    InventoryManager,
    micro_price,
    reservation_price,
    round_to_cent,
)
from .virtual_orders import (
    VirtualOrderManager,
    VOMConfig,
    OrderSlot,
    PendingPlacement,
)

__all__ = [
    "OrderBook",
    "ArbitrageAnalyzer",
    "MarketMakerEngine",
    "MMConfig",
    "InventoryManager",
    "micro_price",
    "reservation_price",
    "round_to_cent",
    "VirtualOrderManager",
    "VOMConfig",
    "OrderSlot",
    "PendingPlacement",
]
