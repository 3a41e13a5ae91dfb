from decimal import Decimal

import pytest

from polyquote.config import Config

ENV_KEYS = (
    "LOG_LEVEL", "LOG_FILE", "LOG_ONLY_SUMMARY", "STATS_INTERVAL",
    "MM_RISK_FACTOR", "MM_SPREAD_MARGIN",
    "VOM_LATENCY_MIN_MS", "VOM_LATENCY_MAX_MS", "VOM_ORDER_SIZE",
    "CLOB_WS_URL", "GAMMA_API_URL", "MARKET_SLUG_PREFIX", "MARKET_WINDOW_SECS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:

    def test_defaults(self):
        config = Config()

        assert config.mm.risk_factor == Decimal("0.05")
        assert config.mm.spread_margin == Decimal("0.01")
        assert config.vom.latency_min_ms == 0
        assert config.vom.order_size == Decimal("10")
        assert config.discovery.slug_prefix == "btc-updown-15m"
        assert config.LOG_ONLY_SUMMARY is False
        assert config.validate() == []

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MM_RISK_FACTOR", "0.1")
        monkeypatch.setenv("MM_SPREAD_MARGIN", "0.02")
        monkeypatch.setenv("VOM_LATENCY_MIN_MS", "20")
        monkeypatch.setenv("VOM_LATENCY_MAX_MS", "250")
        monkeypatch.setenv("VOM_ORDER_SIZE", "25")
        monkeypatch.setenv("LOG_ONLY_SUMMARY", "true")
        monkeypatch.setenv("MARKET_SLUG_PREFIX", "eth-updown-15m")

        config = Config()

        assert config.mm.risk_factor == Decimal("0.1")
        assert config.mm.spread_margin == Decimal("0.02")
        assert (config.vom.latency_min_ms, config.vom.latency_max_ms) == (20, 250)
        assert config.vom.order_size == Decimal("25")
        assert config.LOG_ONLY_SUMMARY is True
        assert config.discovery.slug_prefix == "eth-updown-15m"

    def test_instances_do_not_share_nested_configs(self, monkeypatch):
        first = Config()
        monkeypatch.setenv("MM_RISK_FACTOR", "0.2")
        second = Config()

        assert first.mm.risk_factor == Decimal("0.05")
        assert second.mm.risk_factor == Decimal("0.2")

    def test_bad_decimal_is_rejected(self, monkeypatch):
        monkeypatch.setenv("MM_RISK_FACTOR", "lots")
        with pytest.raises(ValueError, match="MM_RISK_FACTOR"):
            Config()

    def test_validate_reports_inverted_latency(self, monkeypatch):
        monkeypatch.setenv("VOM_LATENCY_MIN_MS", "300")
        monkeypatch.setenv("VOM_LATENCY_MAX_MS", "100")

        warnings = Config().validate()

        assert any("inverted" in w for w in warnings)

    def test_validate_clamps_negative_latency(self, monkeypatch):
        monkeypatch.setenv("VOM_LATENCY_MIN_MS", "-5")
        config = Config()

        warnings = config.validate()

        assert config.vom.latency_min_ms == 0
        assert any("negative" in w for w in warnings)

    def test_summary_mentions_key_settings(self):
        text = Config().summary()
        assert "PolyQuote v1.0.0" in text
        assert "btc-updown-15m" in text
        assert "Risk factor: 0.05" in text
