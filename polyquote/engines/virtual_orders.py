"""
PolyQuote — Virtual Order Manager
==================================
Paper venue for the market maker's quotes.

Each outcome role (YES / NO) owns exactly one slot, which is always in one of
three states:

  EMPTY    → nothing working
  PENDING  → a placement is in flight (simulated network latency)
  RESTING  → an order is live on the paper book, waiting for a fill

  EMPTY ──quote──▶ PENDING ──latency──▶ RESTING ──fill──▶ EMPTY
              ▲         │                   │
              └─quote───┴───────quote───────┘        (supersede: cancel + restart)
  any state ──market expired / discovered──▶ EMPTY

A BID order fills when a price_change delta for its asset reports a best ask
at or below the order price. The fill itself is delivered after another
simulated delay; when the timer fires the slot must still hold the very same
order (by order id), otherwise the fill is stale and dropped.

ASK orders are accepted but never filled: the market maker only quotes bids.
"""

import itertools
import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Set

from ..core.bus import EventBus
from ..core.events import (
    EventType,
    Fill,
    MarketExpired,
    MarketInfo,
    PriceChange,
    PriceChangeBatch,
    Quote,
    QuoteSide,
    Role,
    SimulatedOrder,
)
from ..core.scheduler import Scheduler, TaskHandle


# ─────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────

@dataclass
class VOMConfig:
    """Paper venue tuneables."""
    latency_min_ms: int = 0                       # Simulated network delay window
    latency_max_ms: int = 0
    order_size: Decimal = Decimal("10")           # Fixed size per order
    price_tolerance: Decimal = Decimal("0.0001")  # Re-quotes closer than this are ignored


# ─────────────────────────────────────────────
# Slots
# ─────────────────────────────────────────────

@dataclass
class PendingPlacement:
    quote: Quote
    delay_ms: int
    handle: Optional[TaskHandle] = None


@dataclass
class OrderSlot:
    """Single working-order slot for one role. Never holds both an order and a placement."""
    role: Role
    order: Optional[SimulatedOrder] = None
    pending: Optional[PendingPlacement] = None

    @property
    def state(self) -> str:
        if self.pending is not None:
            return "PENDING"
        if self.order is not None:
            return "RESTING"
        return "EMPTY"

    def describe(self) -> str:
        if self.order is not None:
            return f"{self.order.side.value} @ {self.order.price:.4f}"
        if self.pending is not None:
            return f"pending {self.pending.quote.side.value} @ {self.pending.quote.price:.4f}"
        return "None"


# ─────────────────────────────────────────────
# Virtual Order Manager
# ─────────────────────────────────────────────

class VirtualOrderManager:
    """
    Consumes: QUOTE_ISSUED, PRICE_CHANGE_BATCH, MARKET_DISCOVERED, MARKET_EXPIRED
    Produces: ORDER_PLACED, ORDER_FILLED
    """

    def __init__(self, config: VOMConfig, bus: EventBus, scheduler: Scheduler,
                 rng: Optional[random.Random] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.bus = bus
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.logger = logger or logging.getLogger("polyquote.vom")

        self.slots: Dict[Role, OrderSlot] = {role: OrderSlot(role) for role in Role}
        self._fill_timers: Set[TaskHandle] = set()
        self._order_ids = itertools.count(1)

        # Stats
        self._placed = 0
        self._filled = 0
        self._superseded = 0
        self._duplicates = 0
        self._stale_fills = 0

        bus.subscribe(EventType.QUOTE_ISSUED, self.on_quote)
        bus.subscribe(EventType.PRICE_CHANGE_BATCH, self.on_price_change)
        bus.subscribe(EventType.MARKET_DISCOVERED, self.on_market_discovered)
        bus.subscribe(EventType.MARKET_EXPIRED, self.on_market_expired)

    def simulated_delay_ms(self) -> int:
        """Uniform integer delay in [latency_min_ms, latency_max_ms]."""
        lo = self.config.latency_min_ms
        hi = max(lo, self.config.latency_max_ms)
        return self.rng.randint(lo, hi)

    # ── Placement ──

    def on_quote(self, quote: Quote):
        slot = self.slots[quote.role]

        if self._same_as_working(slot, quote):
            self._duplicates += 1
            return

        # A newer quote always supersedes whatever occupies the slot
        if slot.pending is not None:
            slot.pending.handle.cancel()
            slot.pending = None
            self._superseded += 1
        if slot.order is not None:
            self.logger.debug(
                f"[VOM] Withdrawing {slot.order.role.value} {slot.order.side.value} "
                f"@ {slot.order.price:.4f} for re-quote @ {quote.price:.4f}"
            )
            slot.order = None
            self._superseded += 1

        delay = self.simulated_delay_ms()
        pending = PendingPlacement(quote=quote, delay_ms=delay)
        pending.handle = self.scheduler.call_later(
            delay / 1000.0, lambda: self._on_placement_due(pending)
        )
        slot.pending = pending

    def _same_as_working(self, slot: OrderSlot, quote: Quote) -> bool:
        if slot.order is not None:
            working_asset, working_side, working_price = \
                slot.order.asset_id, slot.order.side, slot.order.price
        elif slot.pending is not None:
            working_asset, working_side, working_price = \
                slot.pending.quote.asset_id, slot.pending.quote.side, slot.pending.quote.price
        else:
            return False
        return (
            working_asset == quote.asset_id
            and working_side == quote.side
            and abs(working_price - quote.price) < self.config.price_tolerance
        )

    def _on_placement_due(self, pending: PendingPlacement):
        quote = pending.quote
        slot = self.slots[quote.role]
        if slot.pending is not pending:
            return

        order = SimulatedOrder(
            order_id=next(self._order_ids),
            asset_id=quote.asset_id,
            role=quote.role,
            side=quote.side,
            price=quote.price,
            size=self.config.order_size,
            created_at=self.scheduler.time_ms(),
        )
        slot.pending = None
        slot.order = order
        self._placed += 1

        self.logger.info(
            f"[VOM] Placed Limit Order | Token: {order.role.value} | "
            f"Type: {order.side.value} | Price: {order.price:.4f} | "
            f"Size: {order.size} | Delay: {pending.delay_ms}ms"
        )
        self.bus.publish(EventType.ORDER_PLACED, order)

    # ── Fills ──

    def on_price_change(self, batch: PriceChangeBatch):
        for change in batch:
            for slot in self.slots.values():
                order = slot.order
                if order is None or order.asset_id != change.asset_id:
                    continue
                if self._crosses(order, change):
                    self._schedule_fill(order)

    @staticmethod
    def _crosses(order: SimulatedOrder, change: PriceChange) -> bool:
        # Only the buy side is modelled: sellers came down to our bid
        if order.side == QuoteSide.BID:
            return change.best_ask is not None and change.best_ask <= order.price
        return False

    def _schedule_fill(self, order: SimulatedOrder):
        delay = self.simulated_delay_ms()
        handle = self.scheduler.call_later(
            delay / 1000.0, lambda: self._on_fill_due(order, handle, delay)
        )
        self._fill_timers.add(handle)

    def _on_fill_due(self, order: SimulatedOrder, handle: TaskHandle, delay: int):
        self._fill_timers.discard(handle)
        slot = self.slots[order.role]

        # The order may have been superseded or cancelled during the delay
        if slot.order is None or slot.order.order_id != order.order_id:
            self._stale_fills += 1
            self.logger.debug(f"[VOM] Stale fill dropped for order #{order.order_id}")
            return

        slot.order = None
        self._filled += 1

        self.logger.info(
            f"[VOM] Order FILLED! | Token: {order.role.value} | Type: {order.side.value} | "
            f"Price: {order.price:.4f} | Size: {order.size} | Fill Delay: {delay}ms"
        )
        self.bus.publish(EventType.ORDER_FILLED, Fill(
            asset_id=order.asset_id,
            role=order.role,
            side=order.side,
            price=order.price,
            size=order.size,
            order_id=order.order_id,
        ))
        self._log_state()

    # ── Reset ──

    def on_market_discovered(self, market: MarketInfo):
        self.cancel_all()

    def on_market_expired(self, event: MarketExpired):
        self.cancel_all()

    def cancel_all(self):
        """Cancel every outstanding placement and fill timer; empty both slots."""
        for slot in self.slots.values():
            if slot.pending is not None:
                slot.pending.handle.cancel()
            slot.pending = None
            slot.order = None
        for handle in self._fill_timers:
            handle.cancel()
        self._fill_timers.clear()

    def _log_state(self):
        self.logger.info(
            f"[VOM State] Active orders => YES: [{self.slots[Role.YES].describe()}] | "
            f"NO: [{self.slots[Role.NO].describe()}]"
        )

    def get_stats(self) -> Dict:
        return {
            "engine": "virtual_orders",
            "latency_ms": [self.config.latency_min_ms, self.config.latency_max_ms],
            "order_size": str(self.config.order_size),
            "slots": {
                role.value: {"state": slot.state, "order": slot.describe()}
                for role, slot in self.slots.items()
            },
            "pending_fills": len(self._fill_timers),
            "placed": self._placed,
            "filled": self._filled,
            "superseded": self._superseded,
            "duplicates": self._duplicates,
            "stale_fills": self._stale_fills,
        }
