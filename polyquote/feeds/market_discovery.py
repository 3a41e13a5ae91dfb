"""
PolyQuote — Rolling Market Discovery
=====================================
Finds the currently open short-window binary market and drives the market
lifecycle on the bus.

Markets are recurring fixed windows whose slug embeds the window start:

    btc-updown-15m-<unix ts rounded down to 900s>

Discovery computes candidate slugs for the current and next few windows,
probes the Gamma API for each, and picks the first one whose window has not
ended. Then, forever:

    MARKET_DISCOVERED → MARKET_WAITING → (sleep until window end) → MARKET_EXPIRED
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import aiohttp

from ..core.bus import EventBus
from ..core.events import EventType, MarketExpired, MarketInfo, MarketWaiting


class MarketNotFoundError(RuntimeError):
    pass


@dataclass
class DiscoveryConfig:
    gamma_url: str = "https://gamma-api.polymarket.com"
    slug_prefix: str = "btc-updown-15m"
    window_secs: int = 900
    lookahead: int = 7                  # Candidate windows probed per discovery
    request_timeout: float = 10.0
    retry_delay: float = 5.0            # Back-off after a failed discovery round


def candidate_slugs(now_ts: int, prefix: str, window_secs: int, lookahead: int) -> List[str]:
    """Slugs of the window containing now_ts and the following ones."""
    slugs = []
    for i in range(lookahead):
        ts = now_ts + i * window_secs
        start = (ts // window_secs) * window_secs
        slugs.append(f"{prefix}-{start}")
    return slugs


def slug_start_ts(slug: str) -> Optional[int]:
    tail = slug.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else None


def _json_list(value) -> List:
    # Gamma returns list fields as JSON strings: '["token1", "token2"]'
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def parse_gamma_market(raw: Dict, window_secs: int) -> MarketInfo:
    """Build MarketInfo from a Gamma /markets entry. Raises ValueError if not binary."""
    tokens = _json_list(raw.get("clobTokenIds", "[]"))
    outcomes = _json_list(raw.get("outcomes", "[]"))
    if len(tokens) != 2 or (outcomes and len(outcomes) != 2):
        raise ValueError("Expected binary market with two clob tokens")

    slug = raw.get("slug", raw.get("market_slug", ""))
    start = slug_start_ts(slug)
    return MarketInfo(
        slug=slug,
        yes_token_id=str(tokens[0]),
        no_token_id=str(tokens[1]),
        question=raw.get("question", ""),
        market_id=str(raw.get("id", raw.get("conditionId", ""))),
        end_ts=start + window_secs if start is not None else None,
    )


class MarketDiscovery:

    def __init__(self, config: DiscoveryConfig, bus: EventBus,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.bus = bus
        self.logger = logger or logging.getLogger("polyquote.feeds.discovery")
        self._session: Optional[aiohttp.ClientSession] = None
        self._running = False

        self.market: Optional[MarketInfo] = None

        # Stats
        self._discovered = 0
        self._probe_failures = 0

    async def run(self):
        """Discover → wait for window end → expire, forever."""
        self._running = True
        while self._running:
            try:
                market = await self.discover_market()
            except MarketNotFoundError as e:
                self.logger.warning(f"{e} — retrying in {self.config.retry_delay:.0f}s")
                await asyncio.sleep(self.config.retry_delay)
                continue

            ends_at = market.end_ts or int(time.time())
            wait_secs = ends_at - time.time()
            if wait_secs > 0:
                ends_iso = datetime.fromtimestamp(ends_at, tz=timezone.utc).isoformat()
                self.bus.publish(EventType.MARKET_WAITING, MarketWaiting(
                    slug=market.slug, ends_at=ends_iso, wait_seconds=round(wait_secs),
                ))
                self.logger.info(f"Market ends at {ends_iso} — waiting {wait_secs:.0f}s")
                await asyncio.sleep(wait_secs)

            self.bus.publish(EventType.MARKET_EXPIRED, MarketExpired(slug=market.slug))
            self.market = None

    async def stop(self):
        self._running = False
        if self._session and not self._session.closed:
            await self._session.close()

    async def discover_market(self) -> MarketInfo:
        started = time.time()
        market = await self._find_via_computed_slugs(int(started))
        if market is None:
            raise MarketNotFoundError(f"No active {self.config.slug_prefix} market found")

        self.market = market
        self._discovered += 1
        self.logger.info(
            f"Market discovered in {(time.time() - started) * 1000:.0f}ms — {market.slug}"
        )
        self.bus.publish(EventType.MARKET_DISCOVERED, market)
        return market

    async def _find_via_computed_slugs(self, now_ts: int) -> Optional[MarketInfo]:
        slugs = candidate_slugs(now_ts, self.config.slug_prefix,
                                self.config.window_secs, self.config.lookahead)
        for slug in slugs:
            t0 = time.time()
            try:
                market = await self.fetch_market(slug)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                self._probe_failures += 1
                self.logger.warning(
                    f"Slug {slug} failed [{(time.time() - t0) * 1000:.0f}ms]: {e}"
                )
                continue

            if market.end_ts is None or now_ts < market.end_ts:
                self.logger.info(f"Slug hit: {slug} [fetch: {(time.time() - t0) * 1000:.0f}ms]")
                return market
        return None

    async def fetch_market(self, slug: str) -> MarketInfo:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
        async with self._session.get(
            f"{self.config.gamma_url}/markets", params={"slug": slug},
        ) as resp:
            if resp.status != 200:
                raise ValueError(f"HTTP {resp.status} fetching market {slug}")
            data = await resp.json()

        entries = data if isinstance(data, list) else [data]
        for entry in entries:
            if isinstance(entry, dict) and entry.get("slug") == slug:
                return parse_gamma_market(entry, self.config.window_secs)
        raise ValueError(f"Market slug {slug} not found")

    def get_stats(self) -> Dict:
        return {
            "market": self.market.slug if self.market else None,
            "ends_at": self.market.end_ts if self.market else None,
            "discovered": self._discovered,
            "probe_failures": self._probe_failures,
        }
