import logging
from decimal import Decimal

import pytest

from polyquote.core.codec import (
    MalformedLevelError,
    parse_book_snapshot,
    parse_decimal,
    parse_price_change,
    parse_price_change_batch,
)
from polyquote.core.events import QuoteSide


class TestParseDecimal:

    @pytest.mark.parametrize("raw, expected", [
        ("0.52", Decimal("0.52")),
        ("1500.25", Decimal("1500.25")),
        (" 0.5 ", Decimal("0.5")),
        ("0", Decimal("0")),
        (3, Decimal("3")),
    ])
    def test_accepts_decimal_strings(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity", "-inf", "-0.01", None, True])
    def test_rejects_unusable_values(self, raw):
        with pytest.raises(MalformedLevelError):
            parse_decimal(raw, "price")

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_decimal("nope")


class TestBookSnapshot:

    def test_preserves_feed_order(self):
        snap = parse_book_snapshot({
            "event_type": "book",
            "asset_id": "tok",
            "bids": [{"price": "0.38", "size": "10"}, {"price": "0.40", "size": "100"}],
            "asks": [{"price": "0.60", "size": "5"}, {"price": "0.45", "size": "50"}],
            "timestamp": "1700000000123",
        })

        assert snap.best_bid_level.price == Decimal("0.40")
        assert snap.best_ask_level.price == Decimal("0.45")
        assert snap.best_ask_level.size == Decimal("50")
        assert snap.timestamp == 1700000000123

    def test_drops_only_the_bad_level(self, caplog):
        with caplog.at_level(logging.WARNING, logger="polyquote.codec"):
            snap = parse_book_snapshot({
                "asset_id": "tok",
                "bids": [{"price": "NaN", "size": "10"}, {"price": "0.40", "size": "1"}],
                "asks": [{"price": "0.45", "size": "-3"}],
            })

        assert [lvl.price for lvl in snap.bids] == [Decimal("0.40")]
        assert snap.asks == ()
        assert snap.best_ask_level is None
        assert "Dropping book level" in caplog.text

    def test_missing_asset_id(self):
        assert parse_book_snapshot({"bids": [], "asks": []}) is None


class TestPriceChange:

    def test_parses_side_and_best_prices(self):
        change = parse_price_change({
            "asset_id": "tok", "price": "0.42", "size": "30", "side": "SELL",
            "best_bid": "0.40", "best_ask": "0.42",
        }, received_ms=1234)

        assert change.side == QuoteSide.ASK
        assert change.best_bid == Decimal("0.40")
        assert change.best_ask == Decimal("0.42")
        assert change.timestamp == 1234

    def test_best_prices_optional(self):
        change = parse_price_change({
            "asset_id": "tok", "price": "0.42", "size": "0", "side": "BUY", "best_ask": "",
        })
        assert change.side == QuoteSide.BID
        assert change.best_ask is None
        assert change.best_bid is None

    @pytest.mark.parametrize("raw", [
        {"price": "0.42", "size": "1", "side": "BUY"},
        {"asset_id": "tok", "price": "0.42", "size": "1", "side": "HOLD"},
        {"asset_id": "tok", "price": "x", "size": "1", "side": "BUY"},
        {"asset_id": "tok", "price": "0.42", "size": "1", "side": "BUY", "best_ask": "NaN"},
    ])
    def test_rejects_malformed_delta(self, raw):
        with pytest.raises(MalformedLevelError):
            parse_price_change(raw)

    def test_batch_keeps_good_deltas_and_stamps_receive_time(self, caplog):
        with caplog.at_level(logging.WARNING, logger="polyquote.codec"):
            batch = parse_price_change_batch({
                "event_type": "price_change",
                "price_changes": [
                    {"asset_id": "a", "price": "0.41", "size": "5", "side": "BUY"},
                    {"asset_id": "a", "price": "Infinity", "size": "5", "side": "BUY"},
                    {"asset_id": "b", "price": "0.58", "size": "2", "side": "SELL"},
                ],
            }, received_ms=1700000000500)

        assert len(batch) == 2
        assert [c.asset_id for c in batch] == ["a", "b"]
        assert batch.timestamp == 1700000000500
        assert batch.effective_timestamp == 1700000000500
        assert "Dropping price change" in caplog.text

    def test_batch_without_changes(self):
        batch = parse_price_change_batch({"event_type": "price_change"}, received_ms=1)
        assert batch.changes == ()
