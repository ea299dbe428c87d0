"""Round-trip commission rates per contract for common futures.

Used when neither the trade log nor the caller supplies a commission.
"""

from decimal import Decimal
from typing import Dict

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_RATE = Decimal("4.20")
_MICRO_RATE = Decimal("1.20")

COMMISSION_RATES: Dict[str, Decimal] = {
    "ES": DEFAULT_RATE,
    "MES": _MICRO_RATE,
    "NQ": DEFAULT_RATE,
    "MNQ": _MICRO_RATE,
    "YM": DEFAULT_RATE,
    "MYM": _MICRO_RATE,
    "RTY": DEFAULT_RATE,
    "M2K": _MICRO_RATE,
    "CL": DEFAULT_RATE,
    "MCL": _MICRO_RATE,
    "GC": DEFAULT_RATE,
    "MGC": _MICRO_RATE,
}


def rate_for_symbol(symbol: str) -> Decimal:
    """Per-contract round-trip rate, DEFAULT_RATE for unknown symbols."""
    rate = COMMISSION_RATES.get(symbol.upper())
    if rate is None:
        logger.debug(f"No commission rate for {symbol}, using {DEFAULT_RATE}")
        return DEFAULT_RATE
    return rate


def calculate_commission(symbol: str, quantity: Decimal) -> Decimal:
    """Total round-trip commission for quantity contracts of symbol."""
    return rate_for_symbol(symbol) * quantity
