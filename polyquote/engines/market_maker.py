"""
PolyQuote — Market Maker
=========================
Buy-only paper market maker for a binary YES/NO market.

Strategy, per book snapshot of either outcome token:
  1. Top of book: best bid / best ask (feed convention: best = LAST level)
  2. Micro-price: each side's price weighted by the OPPOSITE side's size
       micro = (bid·askSize + ask·bidSize) / (bidSize + askSize)
  3. Inventory imbalance across the pair, in percent:
       imb = (yesQty − noQty) / (yesQty + noQty) · 100
  4. Reservation price: micro − (imb/100)·risk_factor   (sign flipped for NO)
  5. Bid = reservation − spread_margin, rounded to the cent, clamped [0.01, 0.99]

Only BID quotes are produced. Holding both outcomes in balance is the goal:
a complete set (1 YES + 1 NO) always pays $1, so buying both below $1 total
locks in the spread regardless of the outcome.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from ..core.bus import EventBus
from ..core.events import (
    BookSnapshot,
    EventType,
    Fill,
    InventoryState,
    MarketExpired,
    MarketInfo,
    PnLSummary,
    Quote,
    QuoteSide,
    Role,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


# ─────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────

@dataclass
class MMConfig:
    """Market maker tuneables."""
    risk_factor: Decimal = Decimal("0.05")     # Weight of the inventory skew
    spread_margin: Decimal = Decimal("0.01")   # Distance of our bid below reservation
    min_price: Decimal = Decimal("0.01")       # Polymarket tick bounds
    max_price: Decimal = Decimal("0.99")


# ─────────────────────────────────────────────
# Pricing helpers
# ─────────────────────────────────────────────

def micro_price(bid: Decimal, bid_size: Decimal, ask: Decimal, ask_size: Decimal) -> Decimal:
    """
    Size-weighted fair price between best bid and ask.

    Heavier resting size on the ask pulls the estimate toward the bid, and
    vice versa. Falls back to mid when both sizes are zero.
    """
    total = bid_size + ask_size
    if total == ZERO:
        return (bid + ask) / 2
    return (bid * ask_size + ask * bid_size) / total


def reservation_price(micro: Decimal, imbalance_pct: Decimal, role: Role,
                      risk_factor: Decimal) -> Decimal:
    """
    Skew the micro-price against the side we already hold too much of.

    Positive imbalance (excess YES) lowers the YES bid and raises the NO bid;
    negative imbalance does the opposite.
    """
    adjustment = (imbalance_pct / HUNDRED) * risk_factor
    if role == Role.NO:
        adjustment = -adjustment
    return micro - adjustment


def round_to_cent(price: Decimal) -> Decimal:
    return price.quantize(CENT, rounding=ROUND_HALF_UP)


# ─────────────────────────────────────────────
# Inventory Manager
# ─────────────────────────────────────────────

class InventoryManager:
    """Tracks YES/NO holdings and their volume-weighted average cost."""

    def __init__(self):
        self._positions: Dict[Role, InventoryState] = {}
        self.reset()

    def reset(self):
        self._positions = {Role.YES: InventoryState(), Role.NO: InventoryState()}
        self.fills = 0

    def get_position(self, role: Role) -> InventoryState:
        return self._positions[role]

    def record_buy(self, role: Role, price: Decimal, size: Decimal):
        """Add a bought lot; average cost is volume-weighted."""
        pos = self._positions[role]
        total_cost = pos.qty * pos.avg + size * price
        pos.qty += size
        pos.avg = total_cost / pos.qty if pos.qty > ZERO else ZERO
        self.fills += 1

    def imbalance_pct(self) -> Decimal:
        """
        Inventory imbalance as a percentage in [-100, +100].

        Positive means excess YES, negative excess NO.
        Example: 2400 YES / 2600 NO → -4.
        """
        yes_qty = self._positions[Role.YES].qty
        no_qty = self._positions[Role.NO].qty
        total = yes_qty + no_qty
        if total == ZERO:
            return ZERO
        return (yes_qty - no_qty) / total * HUNDRED

    def summary(self, slug: str = "") -> PnLSummary:
        yes = self._positions[Role.YES]
        no = self._positions[Role.NO]
        return PnLSummary(
            slug=slug,
            yes_qty=yes.qty, yes_avg=yes.avg,
            no_qty=no.qty, no_avg=no.avg,
            fills=self.fills,
        )

    def describe(self) -> str:
        yes = self._positions[Role.YES]
        no = self._positions[Role.NO]
        return (
            f"YES: [Qty: {yes.qty:.2f} | Avg: {yes.avg:.4f}] | "
            f"NO: [Qty: {no.qty:.2f} | Avg: {no.avg:.4f}]"
        )

    def get_stats(self) -> Dict:
        stats: Dict = {
            role.value.lower(): {
                "qty": str(p.qty),
                "avg": str(round(p.avg, 4)),
                "cost": str(round(p.cost, 2)),
            }
            for role, p in self._positions.items()
        }
        stats["imbalance_pct"] = str(round(self.imbalance_pct(), 2))
        stats["fills"] = self.fills
        return stats


# ─────────────────────────────────────────────
# Market Maker Engine
# ─────────────────────────────────────────────

class MarketMakerEngine:
    """
    Quote engine wired to the event bus.

    Consumes: MARKET_DISCOVERED, BOOK_SNAPSHOT, ORDER_FILLED, MARKET_EXPIRED
    Produces: QUOTE_ISSUED, MARKET_SETTLED
    """

    def __init__(self, config: MMConfig, bus: EventBus,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.bus = bus
        self.logger = logger or logging.getLogger("polyquote.mm")
        self.inventory = InventoryManager()

        # State
        self.market: Optional[MarketInfo] = None
        self.last_quotes: Dict[Role, Quote] = {}
        self.last_summary: Optional[PnLSummary] = None

        # Stats
        self._quote_count = 0
        self._skipped_books = 0
        self._ignored_fills = 0

        bus.subscribe(EventType.MARKET_DISCOVERED, self.on_market_discovered)
        bus.subscribe(EventType.BOOK_SNAPSHOT, self.on_book)
        bus.subscribe(EventType.ORDER_FILLED, self.on_fill)
        bus.subscribe(EventType.MARKET_EXPIRED, self.on_market_expired)

    # ── Lifecycle ──

    def on_market_discovered(self, market: MarketInfo):
        self.market = market
        self.inventory.reset()
        self.last_quotes = {}

    def on_market_expired(self, event: MarketExpired) -> PnLSummary:
        """Log the theoretical settlement of what we hold, then flatten the ledger."""
        slug = event.slug if event else (self.market.slug if self.market else "")
        s = self.inventory.summary(slug)
        self.last_summary = s

        self.logger.info(f"[MARKET EXPIRED] Position PnL Summary ({slug}):")
        self.logger.info(
            f"   - Total YES: {s.yes_qty:.2f} units (Cost Avg: ${s.yes_avg:.4f}) "
            f"-> ${s.yes_invested:.2f} invested."
        )
        self.logger.info(
            f"   - Total NO: {s.no_qty:.2f} units (Cost Avg: ${s.no_avg:.4f}) "
            f"-> ${s.no_invested:.2f} invested."
        )
        self.logger.info(f"   => Theoretical Total Invested: ${s.total_invested:.2f}")
        self.logger.info(f"   => If winning side, payout: ${s.theoretical_payout:.2f}")

        self.bus.publish(EventType.MARKET_SETTLED, s)

        self.inventory.reset()
        self.last_quotes = {}
        self.market = None
        return s

    # ── Fills ──

    def on_fill(self, fill: Fill):
        if fill.side != QuoteSide.BID:
            # Buy-only strategy: sells are never quoted, so nothing to unwind
            self._ignored_fills += 1
            self.logger.debug(f"Ignoring {fill.side.value} fill on {fill.role.value}")
            return

        self.inventory.record_buy(fill.role, fill.price, fill.size)
        self.logger.info(
            f"[INV UPDATE] {fill.role.value} Fill applied! "
            f"New Inv => {self.inventory.describe()}"
        )

    # ── Quoting ──

    def on_book(self, book: BookSnapshot):
        if self.market is None:
            return

        role = self.market.role_of(book.asset_id)
        if role is None:
            return

        bid_level = book.best_bid_level
        ask_level = book.best_ask_level
        if bid_level is None or ask_level is None:
            self._skipped_books += 1
            return

        quote = self.build_quote(book.asset_id, role,
                                 bid_level.price, bid_level.size,
                                 ask_level.price, ask_level.size)
        self.last_quotes[role] = quote
        self._quote_count += 1
        self.bus.publish(EventType.QUOTE_ISSUED, quote)

    def build_quote(self, asset_id: str, role: Role,
                    best_bid: Decimal, bid_size: Decimal,
                    best_ask: Decimal, ask_size: Decimal) -> Quote:
        spread = best_ask - best_bid
        mid = (best_ask + best_bid) / 2
        micro = micro_price(best_bid, bid_size, best_ask, ask_size)
        imbalance = self.inventory.imbalance_pct()
        reservation = reservation_price(micro, imbalance, role, self.config.risk_factor)
        bid = self.bid_price(reservation)

        self.logger.info(
            f"[BOOK {role.value}] Bid: {best_bid:.4f} ({bid_size}) | "
            f"Ask: {best_ask:.4f} ({ask_size}) | Spread: {spread:.4f} | "
            f"Mid: {mid:.4f} | Micro: {micro:.4f} | Imb: {imbalance:.2f}% | "
            f"Res: {reservation:.4f} | MMBid: {bid:.4f}"
        )
        return Quote(asset_id=asset_id, role=role, side=QuoteSide.BID, price=bid)

    def bid_price(self, reservation: Decimal) -> Decimal:
        bid = round_to_cent(reservation - self.config.spread_margin)
        return max(self.config.min_price, min(self.config.max_price, bid))

    # ── Stats ──

    def get_stats(self) -> Dict:
        return {
            "engine": "market_maker",
            "market": self.market.slug if self.market else None,
            "risk_factor": str(self.config.risk_factor),
            "spread_margin": str(self.config.spread_margin),
            "quote_count": self._quote_count,
            "skipped_books": self._skipped_books,
            "ignored_fills": self._ignored_fills,
            "quotes": {
                role.value: str(q.price) for role, q in self.last_quotes.items()
            },
            "inventory": self.inventory.get_stats(),
        }
