"""
PolyQuote — Polymarket Market-Channel WebSocket
================================================
Streams order-book events for the active market's two outcome tokens and
republishes them on the EventBus.

WS Endpoint: wss://ws-subscriptions-clob.polymarket.com/ws/market
No auth required for market data.

Lifecycle (driven by bus events):
  - MARKET_DISCOVERED → (re)connect, subscribed to the YES and NO token ids
  - MARKET_EXPIRED    → disconnect

Message types handled:
  - book:         full snapshot           → BOOK_SNAPSHOT
  - price_change: batch of level deltas   → PRICE_CHANGE_BATCH (receive-time stamped)
Everything else (last_trade_price, tick_size_change, PONG) is counted and dropped.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import aiohttp

from ..core.bus import EventBus
from ..core.codec import parse_book_snapshot, parse_price_change_batch
from ..core.events import EventType, MarketExpired, MarketInfo


@dataclass
class StreamConfig:
    ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    ping_interval: float = 10.0          # Polymarket drops idle sockets; PING every 10s
    connect_timeout: float = 15.0
    reconnect_delay_base: float = 1.0    # doubles on consecutive failures
    reconnect_delay_max: float = 30.0


class MarketStream:
    """
    Market-channel WebSocket client bound to one market at a time.

    - Auto-reconnect with capped exponential backoff
    - PING heartbeat every `ping_interval` seconds
    - _handle_message() is synchronous and publishes straight onto the bus
    """

    def __init__(self, config: StreamConfig, bus: EventBus,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.bus = bus
        self.logger = logger or logging.getLogger("polyquote.feeds.stream")

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._ws_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._connected = False
        self._asset_ids: List[str] = []

        # Stats
        self._msg_count = 0
        self._book_count = 0
        self._price_change_count = 0
        self._ignored_count = 0
        self._reconnect_count = 0
        self._connected_at = 0.0
        self._last_msg_time = 0.0

        bus.subscribe(EventType.MARKET_DISCOVERED, self.on_market_discovered)
        bus.subscribe(EventType.MARKET_EXPIRED, self.on_market_expired)

    # ── Bus handlers ────────────────────────────────────────

    def on_market_discovered(self, market: MarketInfo):
        self._asset_ids = [a for a in (market.yes_token_id, market.no_token_id) if a]
        self.logger.info(f"Subscribing to assets: {', '.join(self._asset_ids)}")
        self.connect()

    def on_market_expired(self, event: MarketExpired):
        self._asset_ids = []
        self.disconnect()

    # ── Connection control ──────────────────────────────────

    def connect(self):
        """(Re)start the socket loop for the current asset ids."""
        self.disconnect()
        self._ws_task = asyncio.get_running_loop().create_task(self._ws_loop(list(self._asset_ids)))

    def disconnect(self):
        if self._ping_task:
            self._ping_task.cancel()
            self._ping_task = None
        if self._ws_task:
            self._ws_task.cancel()
            self._ws_task = None
        self._connected = False

    async def close(self):
        """Clean shutdown."""
        task = self._ws_task
        self.disconnect()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._ws and not self._ws.closed:
            await self._ws.close()
        if self._session and not self._session.closed:
            await self._session.close()
        self.logger.info("Market stream closed")

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscription_message(self, asset_ids: List[str]) -> str:
        return json.dumps({"type": "market", "assets_ids": asset_ids})

    # ── WebSocket Loop ──────────────────────────────────────

    async def _ws_loop(self, asset_ids: List[str]):
        consecutive_failures = 0

        while asset_ids:
            try:
                if self._session is None or self._session.closed:
                    self._session = aiohttp.ClientSession()

                started = time.time()
                async with self._session.ws_connect(
                    self.config.ws_url,
                    timeout=self.config.connect_timeout,
                    heartbeat=None,  # We send PING ourselves
                ) as ws:
                    self._ws = ws
                    self._connected = True
                    self._connected_at = time.time()
                    consecutive_failures = 0

                    await ws.send_str(self.subscription_message(asset_ids))
                    self.logger.info(
                        f"Connected & subscribed [conn: {(time.time() - started) * 1000:.0f}ms]"
                    )

                    self._ping_task = asyncio.create_task(self._ping_loop(ws))

                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self._handle_message(msg.data)
                        elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                            break

                    self._connected = False
                    if self._ping_task:
                        self._ping_task.cancel()
                    self.logger.warning("Market WS disconnected")

            except asyncio.CancelledError:
                return
            except Exception as e:
                self._connected = False
                consecutive_failures += 1
                self.logger.warning(f"Market WS error: {e}")

            self._reconnect_count += 1
            delay = min(
                self.config.reconnect_delay_base * (2 ** min(consecutive_failures, 5)),
                self.config.reconnect_delay_max,
            )
            self.logger.info(f"WS reconnecting in {delay:.0f}s (attempt #{self._reconnect_count})")
            await asyncio.sleep(delay)

    async def _ping_loop(self, ws: aiohttp.ClientWebSocketResponse):
        try:
            while not ws.closed:
                await asyncio.sleep(self.config.ping_interval)
                await ws.send_str("PING")
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.debug(f"Ping error: {e}")

    # ── Message Handling ────────────────────────────────────

    def _handle_message(self, raw: str, received_ms: Optional[int] = None):
        """Parse one frame and publish the events it carries."""
        if raw == "PONG":
            return

        now = received_ms if received_ms is not None else int(time.time() * 1000)
        self._msg_count += 1
        self._last_msg_time = now / 1000

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.debug(f"WS non-JSON message: {raw[:100]}")
            return

        # The initial book dump arrives as a JSON array of book messages
        messages = data if isinstance(data, list) else [data]
        for message in messages:
            if isinstance(message, dict):
                self._route(message, now)

    def _route(self, data: Dict, received_ms: int):
        event_type = data.get("event_type", "")

        if event_type == "book":
            snapshot = parse_book_snapshot(data)
            if snapshot is None:
                return
            self._book_count += 1
            self.bus.publish(EventType.BOOK_SNAPSHOT, snapshot)
        elif event_type == "price_change":
            batch = parse_price_change_batch(data, received_ms)
            if not batch.changes:
                return
            self._price_change_count += 1
            self.bus.publish(EventType.PRICE_CHANGE_BATCH, batch)
        else:
            self._ignored_count += 1

    def get_stats(self) -> Dict:
        return {
            "connected": self._connected,
            "assets": list(self._asset_ids),
            "messages_total": self._msg_count,
            "book_updates": self._book_count,
            "price_changes": self._price_change_count,
            "ignored": self._ignored_count,
            "reconnects": self._reconnect_count,
            "last_msg_age_s": round(time.time() - self._last_msg_time, 1) if self._last_msg_time else None,
        }
