"""End-to-end runs of the whole engine stack on a virtual clock."""

import logging
import random
from decimal import Decimal

import pytest

from polyquote.core.events import EventType, MarketExpired, Role
from polyquote.core.scheduler import ManualScheduler
from polyquote.engines.arbitrage import ArbitrageAnalyzer
from polyquote.engines.market_maker import MarketMakerEngine, MMConfig
from polyquote.engines.virtual_orders import VirtualOrderManager, VOMConfig
from polyquote.replay import replay_events

from .conftest import NO_TOKEN, YES_TOKEN


@pytest.fixture
def clock():
    return ManualScheduler(start_ms=0)


@pytest.fixture
def stack(bus, clock):
    arb = ArbitrageAnalyzer(bus)
    mm = MarketMakerEngine(MMConfig(), bus)
    vom = VirtualOrderManager(VOMConfig(latency_min_ms=50, latency_max_ms=50),
                              bus, clock, rng=random.Random(3))
    return arb, mm, vom


class TestReplay:

    def test_quote_place_fill_settle(self, bus, clock, stack, market, recorder,
                                     make_book, make_batch):
        arb, mm, vom = stack
        placed = recorder(EventType.ORDER_PLACED)
        settled = recorder(EventType.MARKET_SETTLED)

        stats = replay_events(bus, clock, [
            (1000, EventType.MARKET_DISCOVERED, market),
            (1010, EventType.BOOK_SNAPSHOT, make_book(
                YES_TOKEN, bids=[("0.40", "100")], asks=[("0.45", "50")])),
            (1100, EventType.PRICE_CHANGE_BATCH, make_batch(
                (YES_TOKEN, "0.42", "30", "SELL", "0.40", "0.42"), timestamp=1100)),
            (2000, EventType.MARKET_EXPIRED, MarketExpired(slug=market.slug)),
        ])

        assert stats["events"] == 4
        assert stats["timers_fired"] == 2
        assert placed[0].price == Decimal("0.42")
        assert placed[0].created_at == 1060

        summary = settled[0]
        assert summary.yes_qty == Decimal("10")
        assert summary.yes_avg == Decimal("0.42")
        assert summary.no_qty == 0
        assert mm.inventory.get_position(Role.YES).qty == 0

    def test_events_replayed_in_time_order(self, bus, clock, stack, market, recorder,
                                           make_book):
        quotes = recorder(EventType.QUOTE_ISSUED)
        replay_events(bus, clock, [
            (1010, EventType.BOOK_SNAPSHOT, make_book(
                NO_TOKEN, bids=[("0.55", "10")], asks=[("0.57", "10")])),
            (1000, EventType.MARKET_DISCOVERED, market),
        ])

        assert [q.role for q in quotes] == [Role.NO]

    def test_drain_fires_trailing_timers(self, bus, clock, stack, market, recorder, make_book):
        placed = recorder(EventType.ORDER_PLACED)
        events = [
            (1000, EventType.MARKET_DISCOVERED, market),
            (1010, EventType.BOOK_SNAPSHOT, make_book(
                YES_TOKEN, bids=[("0.40", "100")], asks=[("0.45", "50")])),
        ]

        stats = replay_events(bus, clock, events, drain_after_ms=100)

        assert len(placed) == 1
        assert stats["clock_ms"] == 1110
        assert stats["pending_timers"] == 0

    def test_arbitrage_seen_during_replay(self, bus, clock, stack, market, recorder,
                                          make_batch):
        signals = recorder(EventType.ARBITRAGE_DETECTED)
        replay_events(bus, clock, [
            (1000, EventType.MARKET_DISCOVERED, market),
            (1500, EventType.PRICE_CHANGE_BATCH, make_batch(
                (YES_TOKEN, "0.48", "100", "SELL"),
                (NO_TOKEN, "0.50", "100", "SELL"),
                timestamp=1500)),
        ])

        assert len(signals) == 1
        assert signals[0].timestamp == 1500

    def test_event_behind_clock_is_still_published(self, bus, recorder, market, caplog):
        clock = ManualScheduler(start_ms=5000)
        discovered = recorder(EventType.MARKET_DISCOVERED)

        with caplog.at_level(logging.WARNING, logger="polyquote.replay"):
            replay_events(bus, clock, [(1000, EventType.MARKET_DISCOVERED, market)])

        assert discovered == [market]
        assert clock.time_ms() == 5000
        assert "behind the clock" in caplog.text
