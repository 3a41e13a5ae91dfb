"""
PolyQuote — Main Orchestrator
==============================
Runs the paper market maker against the live Polymarket feed:
  - Market discovery (rolling 15-minute BTC up/down markets)
  - Market-channel WebSocket stream
  - Arbitrage analyzer, market maker, virtual order manager
  - Periodic status line

Usage:
  polyquote                           # console script
  python -m polyquote.main
  VOM_LATENCY_MAX_MS=250 polyquote    # simulate up to 250ms network latency
"""

import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Config
from .core.bus import EventBus
from .core.events import ArbitrageSignal, EventType, MarketExpired, MarketInfo, MarketWaiting
from .core.scheduler import LoopScheduler
from .engines.arbitrage import ArbitrageAnalyzer
from .engines.market_maker import MarketMakerEngine
from .engines.virtual_orders import VirtualOrderManager
from .feeds.market_discovery import MarketDiscovery
from .feeds.market_stream import MarketStream

COMPONENT_LOGGERS = (
    "polyquote.mm",
    "polyquote.vom",
    "polyquote.arb",
    "polyquote.feeds.stream",
    "polyquote.feeds.discovery",
)


# ─────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────

def setup_logging(config: Config):
    """Configure logging with file rotation and console output."""
    os.makedirs(os.path.dirname(config.LOG_FILE) or "logs", exist_ok=True)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # File handler (rotating, 10MB max, 5 backups)
    fh = RotatingFileHandler(config.LOG_FILE, maxBytes=10_000_000, backupCount=5)
    fh.setFormatter(fmt)

    # Console handler
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.addHandler(fh)
    root.addHandler(ch)

    # Summary-only mode: per-book/per-order chatter is INFO, keep warnings + status
    if config.LOG_ONLY_SUMMARY:
        for name in COMPONENT_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Quiet noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


# ─────────────────────────────────────────────
# Main Orchestrator
# ─────────────────────────────────────────────

class PolyQuoteBot:
    """
    Wires everything to one EventBus and runs.

    Startup sequence:
      1. Load config, set up logging
      2. Build bus + scheduler, then engines (they subscribe on construction)
      3. Build feeds
      4. Run discovery + status loop until shutdown
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = logging.getLogger("polyquote.main")

        self.bus: Optional[EventBus] = None
        self.scheduler: Optional[LoopScheduler] = None

        # Engines
        self.arb: Optional[ArbitrageAnalyzer] = None
        self.mm: Optional[MarketMakerEngine] = None
        self.vom: Optional[VirtualOrderManager] = None

        # Feeds
        self.stream: Optional[MarketStream] = None
        self.discovery: Optional[MarketDiscovery] = None

        self._stopping = False

    def build(self):
        """Construct and wire all components. Safe to call without a running loop."""
        self.bus = EventBus()
        self.scheduler = LoopScheduler()

        self.arb = ArbitrageAnalyzer(self.bus)
        self.mm = MarketMakerEngine(self.config.mm, self.bus)
        self.vom = VirtualOrderManager(self.config.vom, self.bus, self.scheduler)

        self.stream = MarketStream(self.config.stream, self.bus)
        self.discovery = MarketDiscovery(self.config.discovery, self.bus)

        # Lifecycle listeners
        self.bus.subscribe(EventType.MARKET_DISCOVERED, self._on_discovered)
        self.bus.subscribe(EventType.MARKET_WAITING, self._on_waiting)
        self.bus.subscribe(EventType.MARKET_EXPIRED, self._on_expired)
        self.bus.subscribe(EventType.ARBITRAGE_DETECTED, self._on_arbitrage)

    async def start(self):
        setup_logging(self.config)

        for w in self.config.validate():
            self.logger.warning(w)
        self.logger.info(f"\n{self.config.summary()}")

        self.build()
        self.logger.info(f"Bot started — scanning for {self.config.discovery.slug_prefix} markets...")

        try:
            await asyncio.gather(
                self.discovery.run(),
                self._stats_loop(),
            )
        except asyncio.CancelledError:
            self.logger.info("Shutdown signal received")
        finally:
            await self.shutdown()

    async def _stats_loop(self):
        while True:
            await asyncio.sleep(self.config.STATS_INTERVAL)
            try:
                mm = self.mm.get_stats()
                vom = self.vom.get_stats()
                arb = self.arb.get_stats()
                self.logger.warning(
                    f"[STATUS] market={mm['market']} quotes={mm['quote_count']} "
                    f"placed={vom['placed']} filled={vom['filled']} "
                    f"arb={sum(arb['signals'].values())} inv={mm['inventory']['imbalance_pct']}% "
                    f"ws={'up' if self.stream.is_connected else 'down'}"
                )
            except Exception as e:
                self.logger.error(f"Stats loop error: {e}")

    # ── Lifecycle listeners ──

    def _on_discovered(self, market: MarketInfo):
        self.logger.info(f"Market discovered: {market.slug}")

    def _on_waiting(self, event: MarketWaiting):
        self.logger.info(
            f"Waiting for market to expire: {event.slug} | "
            f"ends {event.ends_at} ({event.wait_seconds}s)"
        )

    def _on_expired(self, event: MarketExpired):
        self.logger.info(f"Market expired: {event.slug} — searching for next...")

    def _on_arbitrage(self, signal: ArbitrageSignal):
        self.logger.info(
            f"Arbitrage event — type={signal.kind.value} "
            f"profit={signal.profit_cents:.2f}¢ at={signal.detected_at}"
        )

    async def shutdown(self):
        if self._stopping:
            return
        self._stopping = True
        self.logger.info("Shutting down PolyQuote...")

        if self.vom:
            self.vom.cancel_all()
        if self.discovery:
            await self.discovery.stop()
        if self.stream:
            await self.stream.close()

        self.logger.info("Shutdown complete")


# ─────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────

def main():
    """Entry point for PolyQuote."""
    app = PolyQuoteBot()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(app.start())

    # Handle SIGINT/SIGTERM
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, main_task.cancel)

    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        loop.run_until_complete(app.shutdown())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
