# symbols.py
"""
Ticker normalization.

Marketplace feeds report bridged or wrapped variants of a currency
("USDC.E", "weth") that the price service lists under a plain ticker.
normalize_symbol maps them to one canonical uppercase form.
"""

from __future__ import annotations

from typing import Dict

# Canonical forms that are not just the part before the first period.
# Values must already be canonical (uppercase, no period, not a key here)
# so normalize_symbol stays idempotent.
SYMBOL_ALIASES: Dict[str, str] = {
    "WETH": "ETH",
    "WMATIC": "MATIC",
}


def normalize_symbol(ticker: str) -> str:
    """
    Map a raw ticker to its canonical form.

      "usdc.e" -> "USDC"
      "WETH"   -> "ETH"
      "SFL"    -> "SFL"

    normalize_symbol(normalize_symbol(x)) == normalize_symbol(x) for any x.
    """
    symbol = ticker.upper().split(".", 1)[0]
    return SYMBOL_ALIASES.get(symbol, symbol)
