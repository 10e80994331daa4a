"""stratlab: strategy backtesting core.

Replays a trading strategy bar-by-bar over historical prices and reports how
it would have done. Everything else in the product (screens, exchange
wizards, wallets) talks to this package through typed payloads.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.4.0"
