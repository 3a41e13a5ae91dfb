"""
Shared fixtures for the PolyQuote test suite.

Timers run on a ManualScheduler so every latency path is deterministic;
nothing here touches the network.
"""

from decimal import Decimal
from typing import Iterable, Optional, Tuple

import pytest

from polyquote.core.bus import EventBus
from polyquote.core.events import (
    BookSnapshot,
    EventType,
    MarketInfo,
    PriceChange,
    PriceChangeBatch,
    PriceLevel,
    QuoteSide,
)
from polyquote.core.scheduler import ManualScheduler

YES_TOKEN = "71321045679252212594626385532706912750332728571942532289631379312455583992563"
NO_TOKEN = "52114319501245915516055106046884209969926127482827954674443846427813813222426"


def D(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def scheduler():
    return ManualScheduler(start_ms=1_700_000_000_000)


@pytest.fixture
def market():
    return MarketInfo(
        slug="btc-updown-15m-1700000100",
        yes_token_id=YES_TOKEN,
        no_token_id=NO_TOKEN,
        question="Bitcoin Up or Down?",
        market_id="512345",
        end_ts=1_700_001_000,
    )


@pytest.fixture
def recorder(bus):
    """Collects every payload published for the requested event types."""
    def _record(*event_types: EventType):
        seen = []
        for et in event_types:
            bus.subscribe(et, seen.append)
        return seen
    return _record


@pytest.fixture
def make_book():
    """Snapshot factory. Levels are (price, size) pairs in feed order (best = last)."""
    def _make(asset_id: str,
              bids: Iterable[Tuple] = (),
              asks: Iterable[Tuple] = ()) -> BookSnapshot:
        return BookSnapshot(
            asset_id=asset_id,
            bids=tuple(PriceLevel(D(p), D(s)) for p, s in bids),
            asks=tuple(PriceLevel(D(p), D(s)) for p, s in asks),
        )
    return _make


@pytest.fixture
def make_batch():
    """Delta batch factory. Each change: (asset_id, price, size, side[, best_bid, best_ask])."""
    def _make(*changes, timestamp: Optional[int] = None) -> PriceChangeBatch:
        parsed = []
        for change in changes:
            asset_id, price, size, side = change[:4]
            best_bid = change[4] if len(change) > 4 else None
            best_ask = change[5] if len(change) > 5 else None
            parsed.append(PriceChange(
                asset_id=asset_id,
                price=D(price),
                size=D(size),
                side=side if isinstance(side, QuoteSide) else QuoteSide.from_wire(side),
                best_bid=D(best_bid) if best_bid is not None else None,
                best_ask=D(best_ask) if best_ask is not None else None,
                timestamp=timestamp,
            ))
        return PriceChangeBatch(changes=tuple(parsed), timestamp=timestamp)
    return _make
