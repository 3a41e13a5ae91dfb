"""
PolyQuote — Wire Codec
=======================
Converts Polymarket CLOB market-channel messages into typed events.

Prices and sizes arrive as decimal strings ("0.52", "1500.25"). A field that
does not parse, is NaN/Infinity, or is negative rejects only the single
level or delta that carries it; the rest of the message is kept.

  book          → BookSnapshot      (level order preserved: best = last)
  price_change  → PriceChangeBatch  (stamped with receive time)
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .events import BookSnapshot, PriceChange, PriceChangeBatch, PriceLevel, QuoteSide

logger = logging.getLogger("polyquote.codec")


class MalformedLevelError(ValueError):
    """A price/size field could not be turned into a usable Decimal."""


def parse_decimal(value: Any, field_name: str = "value") -> Decimal:
    if value is None or isinstance(value, bool):
        raise MalformedLevelError(f"{field_name} missing")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise MalformedLevelError(f"{field_name}={value!r} is not a decimal") from e
    if not d.is_finite():
        raise MalformedLevelError(f"{field_name}={value!r} is not finite")
    if d < 0:
        raise MalformedLevelError(f"{field_name}={value!r} is negative")
    return d


def parse_optional_decimal(value: Any, field_name: str = "value") -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return parse_decimal(value, field_name)


def _parse_ts(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def parse_levels(raw_levels: Any, asset_id: str = "") -> List[PriceLevel]:
    levels: List[PriceLevel] = []
    for raw in raw_levels or []:
        try:
            levels.append(PriceLevel(
                price=parse_decimal(raw.get("price"), "price"),
                size=parse_decimal(raw.get("size"), "size"),
            ))
        except (MalformedLevelError, AttributeError) as e:
            logger.warning(f"Dropping book level for {asset_id[:12]}...: {e}")
    return levels


def parse_book_snapshot(data: Dict) -> Optional[BookSnapshot]:
    """Parse a `book` message. Returns None when there is no asset id."""
    asset_id = data.get("asset_id", "")
    if not asset_id:
        return None
    return BookSnapshot(
        asset_id=asset_id,
        bids=tuple(parse_levels(data.get("bids"), asset_id)),
        asks=tuple(parse_levels(data.get("asks"), asset_id)),
        timestamp=_parse_ts(data.get("timestamp")),
    )


def parse_price_change(raw: Dict, received_ms: Optional[int] = None) -> PriceChange:
    """Parse one entry of `price_changes`. Raises MalformedLevelError."""
    asset_id = raw.get("asset_id", "")
    if not asset_id:
        raise MalformedLevelError("asset_id missing")
    try:
        side = QuoteSide.from_wire(raw.get("side", ""))
    except ValueError as e:
        raise MalformedLevelError(str(e)) from e
    return PriceChange(
        asset_id=asset_id,
        price=parse_decimal(raw.get("price"), "price"),
        size=parse_decimal(raw.get("size"), "size"),
        side=side,
        best_bid=parse_optional_decimal(raw.get("best_bid"), "best_bid"),
        best_ask=parse_optional_decimal(raw.get("best_ask"), "best_ask"),
        timestamp=received_ms,
    )


def parse_price_change_batch(data: Dict, received_ms: Optional[int] = None) -> PriceChangeBatch:
    """Parse a `price_change` message, dropping malformed deltas."""
    changes: List[PriceChange] = []
    for raw in data.get("price_changes", []) or []:
        try:
            changes.append(parse_price_change(raw, received_ms))
        except (MalformedLevelError, AttributeError) as e:
            logger.warning(f"Dropping price change: {e}")
    return PriceChangeBatch(changes=tuple(changes), timestamp=received_ms)
