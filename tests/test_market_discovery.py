import asyncio
import time

import pytest

from polyquote.core.events import EventType, MarketInfo
from polyquote.feeds.market_discovery import (
    DiscoveryConfig,
    MarketDiscovery,
    MarketNotFoundError,
    candidate_slugs,
    parse_gamma_market,
    slug_start_ts,
)

GAMMA_ENTRY = {
    "id": "512345",
    "question": "Bitcoin Up or Down - November 14, 10:15PM-10:30PM ET",
    "slug": "btc-updown-15m-1700000100",
    "conditionId": "0xdeadbeef",
    "outcomes": '["Up", "Down"]',
    "clobTokenIds": '["111", "222"]',
}


class TestSlugs:

    def test_candidates_start_at_current_window(self):
        slugs = candidate_slugs(1_700_000_500, "btc-updown-15m", 900, 3)
        assert slugs == [
            "btc-updown-15m-1700000100",
            "btc-updown-15m-1700001000",
            "btc-updown-15m-1700001900",
        ]

    def test_slug_start_ts(self):
        assert slug_start_ts("btc-updown-15m-1700000100") == 1_700_000_100
        assert slug_start_ts("will-it-rain") is None


class TestParseGammaMarket:

    def test_parses_string_encoded_lists(self):
        market = parse_gamma_market(GAMMA_ENTRY, 900)

        assert market.slug == "btc-updown-15m-1700000100"
        assert market.yes_token_id == "111"
        assert market.no_token_id == "222"
        assert market.market_id == "512345"
        assert market.end_ts == 1_700_001_000
        assert market.url.endswith("/btc-updown-15m-1700000100")

    def test_accepts_real_lists(self):
        entry = dict(GAMMA_ENTRY, clobTokenIds=["111", "222"], outcomes=["Up", "Down"])
        assert parse_gamma_market(entry, 900).no_token_id == "222"

    @pytest.mark.parametrize("tokens", ['["111"]', "[]", "garbage", '["1", "2", "3"]'])
    def test_rejects_non_binary(self, tokens):
        with pytest.raises(ValueError):
            parse_gamma_market(dict(GAMMA_ENTRY, clobTokenIds=tokens), 900)

    def test_unknown_window_has_no_end(self):
        market = parse_gamma_market(dict(GAMMA_ENTRY, slug="custom-market"), 900)
        assert market.end_ts is None


def live_market(slug, ends_in):
    return MarketInfo(slug=slug, yes_token_id="111", no_token_id="222",
                      end_ts=int(time.time()) + ends_in)


class TestMarketDiscovery:

    def test_publishes_first_open_candidate(self, bus, recorder):
        discovered = recorder(EventType.MARKET_DISCOVERED)
        disc = MarketDiscovery(DiscoveryConfig(lookahead=3), bus)
        probed = []

        async def fake_fetch(slug):
            probed.append(slug)
            if len(probed) == 1:
                raise ValueError(f"Market slug {slug} not found")
            return live_market(slug, 600)

        disc.fetch_market = fake_fetch
        market = asyncio.run(disc.discover_market())

        assert discovered == [market]
        assert market.slug == probed[1]
        assert disc.get_stats()["probe_failures"] == 1
        assert disc.get_stats()["discovered"] == 1

    def test_skips_markets_that_already_ended(self, bus):
        disc = MarketDiscovery(DiscoveryConfig(lookahead=2), bus)

        async def fake_fetch(slug):
            return live_market(slug, -10)

        disc.fetch_market = fake_fetch
        with pytest.raises(MarketNotFoundError):
            asyncio.run(disc.discover_market())

    def test_raises_when_nothing_resolves(self, bus, recorder):
        discovered = recorder(EventType.MARKET_DISCOVERED)
        disc = MarketDiscovery(DiscoveryConfig(lookahead=4), bus)

        async def fake_fetch(slug):
            raise ValueError("HTTP 404")

        disc.fetch_market = fake_fetch
        with pytest.raises(MarketNotFoundError):
            asyncio.run(disc.discover_market())

        assert discovered == []
        assert disc.get_stats()["probe_failures"] == 4

    def test_run_drives_market_lifecycle(self, bus, recorder):
        events = recorder(EventType.MARKET_DISCOVERED, EventType.MARKET_WAITING,
                          EventType.MARKET_EXPIRED)
        disc = MarketDiscovery(DiscoveryConfig(lookahead=1), bus)

        async def fake_fetch(slug):
            return live_market(slug, 1)

        disc.fetch_market = fake_fetch

        def stop_after_expiry(event):
            disc._running = False

        bus.subscribe(EventType.MARKET_EXPIRED, stop_after_expiry)
        asyncio.run(asyncio.wait_for(disc.run(), timeout=5))

        discovered, waiting, expired = events
        assert isinstance(discovered, MarketInfo)
        assert waiting.slug == discovered.slug
        assert 0 <= waiting.wait_seconds <= 1
        assert waiting.ends_at.endswith("+00:00")
        assert expired.slug == discovered.slug
        assert disc.market is None
