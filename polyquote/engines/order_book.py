"""
PolyQuote — Order Book
=======================
Per-asset price-level ledger rebuilt from price_change deltas.

Bids and asks are price → size maps. A zero-size update removes the level.
Crossed books are not corrected: the ledger mirrors whatever the feed says.
"""

from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..core.events import PriceLevel, QuoteSide

ZERO = Decimal("0")


class OrderBook:

    def __init__(self, token_id: str):
        self.token_id = token_id
        self.bids: Dict[Decimal, Decimal] = {}
        self.asks: Dict[Decimal, Decimal] = {}
        self.updates = 0

    def apply(self, price: Decimal, side: QuoteSide, size: Decimal) -> None:
        """Upsert or remove one level. No range validation here."""
        book = self.bids if side == QuoteSide.BID else self.asks
        if size == ZERO:
            book.pop(price, None)
        else:
            book[price] = size
        self.updates += 1

    def replace(self, bids: Iterable[PriceLevel], asks: Iterable[PriceLevel]) -> None:
        """Load a full snapshot, discarding every existing level."""
        self.bids = {lvl.price: lvl.size for lvl in bids if lvl.size != ZERO}
        self.asks = {lvl.price: lvl.size for lvl in asks if lvl.size != ZERO}
        self.updates += 1

    def best_bid(self) -> Optional[Decimal]:
        return max(self.bids) if self.bids else None

    def best_ask(self) -> Optional[Decimal]:
        return min(self.asks) if self.asks else None

    def size_at(self, price: Decimal, side: QuoteSide) -> Decimal:
        book = self.bids if side == QuoteSide.BID else self.asks
        return book.get(price, ZERO)

    def depth(self) -> Dict[str, int]:
        return {"bids": len(self.bids), "asks": len(self.asks)}

    def __repr__(self) -> str:
        return (
            f"<OrderBook {self.token_id[:12]} bid={self.best_bid()} "
            f"ask={self.best_ask()} depth={len(self.bids)}/{len(self.asks)}>"
        )
