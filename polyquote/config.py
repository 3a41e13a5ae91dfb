"""
PolyQuote — Unified Configuration
==================================
Central configuration for the engines and feed adapters.
Loads from environment variables with sensible defaults.
"""

import os
from decimal import Decimal, InvalidOperation
from typing import List

from .engines.market_maker import MMConfig
from .engines.virtual_orders import VOMConfig
from .feeds.market_discovery import DiscoveryConfig
from .feeds.market_stream import StreamConfig


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name}={raw!r} is not a decimal")


class Config:
    """
    Master configuration for PolyQuote.

    Hierarchy:
      1. Environment variables (highest priority)
      2. Defaults (coded here)
    """

    # ── Identity ──
    VERSION: str = "1.0.0"
    INSTANCE_NAME: str = "polyquote"

    # ── Logging ──
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/polyquote.log"
    LOG_ONLY_SUMMARY: bool = False

    # ── Status ──
    STATS_INTERVAL: float = 60.0        # seconds between status log lines

    # ── Engine / feed configs ──
    mm: MMConfig = None
    vom: VOMConfig = None
    stream: StreamConfig = None
    discovery: DiscoveryConfig = None

    def __init__(self):
        self.mm = MMConfig()
        self.vom = VOMConfig()
        self.stream = StreamConfig()
        self.discovery = DiscoveryConfig()
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        # Logging
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", self.LOG_LEVEL)
        self.LOG_FILE = os.environ.get("LOG_FILE", self.LOG_FILE)
        self.LOG_ONLY_SUMMARY = _env_bool("LOG_ONLY_SUMMARY", self.LOG_ONLY_SUMMARY)
        self.STATS_INTERVAL = float(os.environ.get("STATS_INTERVAL", str(self.STATS_INTERVAL)))

        # Market maker
        self.mm.risk_factor = _env_decimal("MM_RISK_FACTOR", self.mm.risk_factor)
        self.mm.spread_margin = _env_decimal("MM_SPREAD_MARGIN", self.mm.spread_margin)

        # Paper venue
        if os.environ.get("VOM_LATENCY_MIN_MS"):
            self.vom.latency_min_ms = int(os.environ["VOM_LATENCY_MIN_MS"])
        if os.environ.get("VOM_LATENCY_MAX_MS"):
            self.vom.latency_max_ms = int(os.environ["VOM_LATENCY_MAX_MS"])
        self.vom.order_size = _env_decimal("VOM_ORDER_SIZE", self.vom.order_size)

        # Feeds
        self.stream.ws_url = os.environ.get("CLOB_WS_URL", self.stream.ws_url)
        self.discovery.gamma_url = os.environ.get("GAMMA_API_URL", self.discovery.gamma_url)
        self.discovery.slug_prefix = os.environ.get("MARKET_SLUG_PREFIX", self.discovery.slug_prefix)
        if os.environ.get("MARKET_WINDOW_SECS"):
            self.discovery.window_secs = int(os.environ["MARKET_WINDOW_SECS"])

    def validate(self) -> List[str]:
        """Validate config and return list of warnings."""
        warnings = []

        if self.vom.latency_min_ms < 0:
            warnings.append("WARNING: VOM_LATENCY_MIN_MS is negative — treated as 0")
            self.vom.latency_min_ms = 0
        if self.vom.latency_max_ms < self.vom.latency_min_ms:
            warnings.append(
                f"WARNING: VOM latency window inverted "
                f"({self.vom.latency_min_ms} > {self.vom.latency_max_ms}ms) — using min for both"
            )
        if self.vom.order_size <= 0:
            warnings.append("CRITICAL: VOM_ORDER_SIZE must be positive")
        if not (Decimal("0") < self.mm.spread_margin < Decimal("1")):
            warnings.append(f"WARNING: MM spread margin {self.mm.spread_margin} outside (0, 1)")
        if self.mm.risk_factor < 0:
            warnings.append("WARNING: negative MM risk factor inverts the inventory skew")

        return warnings

    def summary(self) -> str:
        """Human-readable config summary."""
        return (
            f"PolyQuote v{self.VERSION} — PAPER\n"
            f"─── Market Maker ───\n"
            f"  Risk factor: {self.mm.risk_factor}\n"
            f"  Spread margin: {self.mm.spread_margin * 100:.1f}¢\n"
            f"─── Virtual Orders ───\n"
            f"  Latency: {self.vom.latency_min_ms}-{self.vom.latency_max_ms}ms\n"
            f"  Order size: {self.vom.order_size}\n"
            f"─── Feeds ───\n"
            f"  Market: {self.discovery.slug_prefix} ({self.discovery.window_secs}s windows)\n"
            f"  WS: {self.stream.ws_url}\n"
            f"  Gamma: {self.discovery.gamma_url}\n"
        )
