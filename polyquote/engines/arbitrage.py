"""
PolyQuote — Arbitrage Analyzer
===============================
Watches both outcome books of the active binary market for complete-set
mispricing.

YES + NO always settles to exactly $1.00, so:
  - BUY_BOTH:  ask(YES) + ask(NO) < 1.00  → buy both, collect $1 at settlement
  - SELL_BOTH: bid(YES) + bid(NO) > 1.00  → sell both, owe $1 at settlement

Books are rebuilt from price_change deltas (BUY → bids, SELL → asks) and
evaluated once per batch. There is no de-duplication: every qualifying batch
emits a fresh signal and consumers debounce if they need to.
"""

import logging
from typing import Dict, List, Optional

from ..core.bus import EventBus
from ..core.events import (
    ONE_DOLLAR,
    ArbitrageSignal,
    ArbKind,
    BookSnapshot,
    EventType,
    MarketExpired,
    MarketInfo,
    PriceChangeBatch,
)
from .order_book import OrderBook


class ArbitrageAnalyzer:

    def __init__(self, bus: EventBus, logger: Optional[logging.Logger] = None):
        self.bus = bus
        self.logger = logger or logging.getLogger("polyquote.arb")

        self.yes_token_id: Optional[str] = None
        self.no_token_id: Optional[str] = None
        self.books: Dict[str, OrderBook] = {}

        # Stats
        self._batches = 0
        self._dropped_deltas = 0
        self._signals: Dict[ArbKind, int] = {ArbKind.BUY_BOTH: 0, ArbKind.SELL_BOTH: 0}
        self._last_signal: Optional[ArbitrageSignal] = None

        bus.subscribe(EventType.MARKET_DISCOVERED, self.on_market_discovered)
        bus.subscribe(EventType.PRICE_CHANGE_BATCH, self.on_price_change)
        bus.subscribe(EventType.BOOK_SNAPSHOT, self.on_book_snapshot)
        bus.subscribe(EventType.MARKET_EXPIRED, self.on_market_expired)

    # ── Event handlers ──

    def on_market_discovered(self, market: MarketInfo) -> None:
        self.yes_token_id = market.yes_token_id
        self.no_token_id = market.no_token_id
        self.books = {}
        if self.yes_token_id:
            self.books[self.yes_token_id] = OrderBook(self.yes_token_id)
        if self.no_token_id:
            self.books[self.no_token_id] = OrderBook(self.no_token_id)

        self.logger.info(
            f"Tracking market: {market.slug} | "
            f"YES={self.yes_token_id} | NO={self.no_token_id}"
        )

    def on_market_expired(self, event: MarketExpired) -> None:
        self.yes_token_id = None
        self.no_token_id = None
        self.books = {}

    def on_book_snapshot(self, snapshot: BookSnapshot) -> None:
        book = self.books.get(snapshot.asset_id)
        if book is None:
            return
        book.replace(snapshot.bids, snapshot.asks)

    def on_price_change(self, batch: PriceChangeBatch) -> None:
        self._batches += 1
        for change in batch:
            book = self.books.get(change.asset_id)
            if book is None:
                self._dropped_deltas += 1
                continue
            book.apply(change.price, change.side, change.size)

        self.check_arbitrage(batch.effective_timestamp)

    # ── Evaluation ──

    def check_arbitrage(self, timestamp: int) -> List[ArbitrageSignal]:
        """Compare best prices across both books; publish and return any signals."""
        if not self.yes_token_id or not self.no_token_id:
            return []

        yes_book = self.books.get(self.yes_token_id)
        no_book = self.books.get(self.no_token_id)
        if yes_book is None or no_book is None:
            return []

        yes_bid, yes_ask = yes_book.best_bid(), yes_book.best_ask()
        no_bid, no_ask = no_book.best_bid(), no_book.best_ask()

        signals = []

        if yes_ask is not None and no_ask is not None:
            combined_ask = yes_ask + no_ask
            if combined_ask < ONE_DOLLAR:
                signals.append(ArbitrageSignal(
                    kind=ArbKind.BUY_BOTH,
                    yes_price=yes_ask,
                    no_price=no_ask,
                    combined=combined_ask,
                    profit=ONE_DOLLAR - combined_ask,
                    timestamp=timestamp,
                ))

        if yes_bid is not None and no_bid is not None:
            combined_bid = yes_bid + no_bid
            if combined_bid > ONE_DOLLAR:
                signals.append(ArbitrageSignal(
                    kind=ArbKind.SELL_BOTH,
                    yes_price=yes_bid,
                    no_price=no_bid,
                    combined=combined_bid,
                    profit=combined_bid - ONE_DOLLAR,
                    timestamp=timestamp,
                ))

        for signal in signals:
            self._signals[signal.kind] += 1
            self._last_signal = signal
            leg = "ask" if signal.kind == ArbKind.BUY_BOTH else "bid"
            bound = "<" if signal.kind == ArbKind.BUY_BOTH else ">"
            self.logger.info(
                f"ARB DETECTED — {signal.kind.value.replace('_', ' ')} @ {signal.detected_at}\n"
                f"   YES {leg} : ${signal.yes_price:.4f}\n"
                f"   NO  {leg} : ${signal.no_price:.4f}\n"
                f"   Combined: ${signal.combined:.4f} ({bound} $1.00)\n"
                f"   Profit  : {signal.profit_cents:.2f}¢ per $1 contract"
            )
            self.bus.publish(EventType.ARBITRAGE_DETECTED, signal)

        return signals

    def get_stats(self) -> Dict:
        def _book(token_id: Optional[str]) -> Dict:
            book = self.books.get(token_id) if token_id else None
            if book is None:
                return {}
            best_bid, best_ask = book.best_bid(), book.best_ask()
            return {
                "best_bid": str(best_bid) if best_bid is not None else None,
                "best_ask": str(best_ask) if best_ask is not None else None,
                **book.depth(),
            }

        last = self._last_signal
        return {
            "engine": "arbitrage",
            "batches": self._batches,
            "dropped_deltas": self._dropped_deltas,
            "signals": {k.value: n for k, n in self._signals.items()},
            "last_signal": {
                "kind": last.kind.value,
                "combined": str(last.combined),
                "profit": str(last.profit),
                "at": last.detected_at,
            } if last else None,
            "books": {"yes": _book(self.yes_token_id), "no": _book(self.no_token_id)},
        }
