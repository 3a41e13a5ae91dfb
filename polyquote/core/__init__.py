"""PolyQuote — shared event types, bus, schedulers and wire codec."""
from .bus import EventBus
from .events import (
    ArbitrageSignal,
    ArbKind,
    BookSnapshot,
    EventType,
    Fill,
    InventoryState,
    MarketExpired,
    MarketInfo,
    MarketWaiting,
    PnLSummary,
    PriceChange,
    PriceChangeBatch,
    PriceLevel,
    Quote,
    QuoteSide,
    Role,
    SimulatedOrder,
)
from .scheduler import LoopScheduler, ManualScheduler, Scheduler, TaskHandle

__all__ = [
    "EventBus",
    "ArbitrageSignal",
    "ArbKind",
    "BookSnapshot",
    "EventType",
    "Fill",
    "InventoryState",
    "MarketExpired",
    "MarketInfo",
    "MarketWaiting",
    "PnLSummary",
    "PriceChange",
    "PriceChangeBatch",
    "PriceLevel",
    "Quote",
    "QuoteSide",
    "Role",
    "SimulatedOrder",
    "LoopScheduler",
    "ManualScheduler",
    "Scheduler",
    "TaskHandle",
]
