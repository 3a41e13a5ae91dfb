"""
PolyQuote — paper market maker and complete-set arbitrage detector for
Polymarket's rolling binary markets.
"""

__version__ = "1.0.0"
