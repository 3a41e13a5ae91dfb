"""
PolyQuote — Event Types
========================
Typed records exchanged over the EventBus.

Every component talks to the others only through these events:

  Feed / discovery  →  MARKET_DISCOVERED, BOOK_SNAPSHOT,
                       PRICE_CHANGE_BATCH, MARKET_EXPIRED, MARKET_WAITING
  MarketMaker       →  QUOTE_ISSUED, MARKET_SETTLED
  VirtualOrders     →  ORDER_PLACED, ORDER_FILLED
  Arbitrage         →  ARBITRAGE_DETECTED

All prices and sizes are Decimal. Wire strings are converted in core.codec.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

ONE_DOLLAR = Decimal("1.00")


def now_ms() -> int:
    return int(time.time() * 1000)


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class EventType(Enum):
    MARKET_DISCOVERED = "market.discovered"
    MARKET_WAITING = "market.waiting"
    MARKET_EXPIRED = "market.expired"
    MARKET_SETTLED = "market.settled"
    BOOK_SNAPSHOT = "market.bookSnapshot"
    PRICE_CHANGE_BATCH = "market.priceChangeBatch"
    QUOTE_ISSUED = "quote.issued"
    ORDER_PLACED = "order.placed"
    ORDER_FILLED = "order.filled"
    ARBITRAGE_DETECTED = "arbitrage.detected"


class Role(Enum):
    """Which outcome token of the binary market an asset is."""
    YES = "YES"
    NO = "NO"


class QuoteSide(Enum):
    """Book side of a level, or direction of a quote/order."""
    BID = "BID"
    ASK = "ASK"

    @classmethod
    def from_wire(cls, side: str) -> "QuoteSide":
        # Polymarket: BUY levels are bids, SELL levels are asks
        if side == "BUY":
            return cls.BID
        if side == "SELL":
            return cls.ASK
        raise ValueError(f"Unknown book side: {side!r}")


class ArbKind(Enum):
    BUY_BOTH = "BUY_BOTH"
    SELL_BOTH = "SELL_BOTH"


# ─────────────────────────────────────────────
# Market lifecycle
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class MarketInfo:
    """The active binary market: one YES token and one NO token."""
    slug: str
    yes_token_id: str
    no_token_id: str
    question: str = ""
    market_id: str = ""
    end_ts: Optional[int] = None    # epoch seconds

    def role_of(self, asset_id: str) -> Optional[Role]:
        if asset_id == self.yes_token_id:
            return Role.YES
        if asset_id == self.no_token_id:
            return Role.NO
        return None

    @property
    def url(self) -> str:
        return f"https://polymarket.com/event/{self.slug}"


@dataclass(frozen=True)
class MarketWaiting:
    slug: str
    ends_at: str          # ISO-8601, UTC
    wait_seconds: int


@dataclass(frozen=True)
class MarketExpired:
    slug: str


# ─────────────────────────────────────────────
# Order book feed
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class PriceLevel:
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class BookSnapshot:
    """
    Full book for one asset.

    Feed convention: bids ascend and asks descend, so the best level of
    each side is the LAST element.
    """
    asset_id: str
    bids: Tuple[PriceLevel, ...] = ()
    asks: Tuple[PriceLevel, ...] = ()
    timestamp: Optional[int] = None

    @property
    def best_bid_level(self) -> Optional[PriceLevel]:
        return self.bids[-1] if self.bids else None

    @property
    def best_ask_level(self) -> Optional[PriceLevel]:
        return self.asks[-1] if self.asks else None


@dataclass(frozen=True)
class PriceChange:
    """One level delta from a price_change message."""
    asset_id: str
    price: Decimal
    size: Decimal
    side: QuoteSide
    best_bid: Optional[Decimal] = None
    best_ask: Optional[Decimal] = None
    timestamp: Optional[int] = None   # ms


@dataclass(frozen=True)
class PriceChangeBatch:
    changes: Tuple[PriceChange, ...]
    timestamp: Optional[int] = None   # ms

    def __iter__(self):
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def effective_timestamp(self) -> int:
        """Batch timestamp, else the first delta's, else now."""
        if self.timestamp is not None:
            return self.timestamp
        for change in self.changes:
            if change.timestamp is not None:
                return change.timestamp
        return now_ms()


# ─────────────────────────────────────────────
# Engine output
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class Quote:
    """Desired resting order for one role, as decided by the market maker."""
    asset_id: str
    role: Role
    side: QuoteSide
    price: Decimal


@dataclass(frozen=True)
class SimulatedOrder:
    """
    An order resting on the paper venue.

    order_id is a per-manager generation counter; a scheduled fill is only
    honoured while the slot still holds the order with the same id.
    """
    order_id: int
    asset_id: str
    role: Role
    side: QuoteSide
    price: Decimal
    size: Decimal
    created_at: int   # ms


@dataclass(frozen=True)
class Fill:
    asset_id: str
    role: Role
    side: QuoteSide
    price: Decimal
    size: Decimal
    order_id: Optional[int] = None

    @property
    def notional(self) -> Decimal:
        return self.price * self.size


@dataclass(frozen=True)
class ArbitrageSignal:
    kind: ArbKind
    yes_price: Decimal
    no_price: Decimal
    combined: Decimal
    profit: Decimal
    timestamp: int    # ms

    @property
    def profit_cents(self) -> Decimal:
        return self.profit * 100

    @property
    def detected_at(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class InventoryState:
    """Position held in one outcome token."""
    qty: Decimal = Decimal("0")
    avg: Decimal = Decimal("0")

    @property
    def cost(self) -> Decimal:
        return self.qty * self.avg


@dataclass(frozen=True)
class PnLSummary:
    """Informational settlement summary produced when a market expires."""
    slug: str
    yes_qty: Decimal
    yes_avg: Decimal
    no_qty: Decimal
    no_avg: Decimal
    fills: int = 0

    @property
    def yes_invested(self) -> Decimal:
        return self.yes_qty * self.yes_avg

    @property
    def no_invested(self) -> Decimal:
        return self.no_qty * self.no_avg

    @property
    def total_invested(self) -> Decimal:
        return self.yes_invested + self.no_invested

    @property
    def theoretical_payout(self) -> Decimal:
        """Payout if the larger-held side resolves to $1."""
        return max(self.yes_qty, self.no_qty) * ONE_DOLLAR
