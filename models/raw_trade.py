"""Row records produced by the trade log parsers."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union


@dataclass
class RawTradeRecord:
    """One successfully parsed row of a broker trade log.

    Attributes:
        row_number: 1-based line number in the source file (header is row 1).
        raw_text: Snapshot of the source row for diagnostics.
        instrument: Instrument as exported, e.g. "ES SEP25".
        symbol: Base symbol extracted from the instrument, e.g. "ES".
        direction: "LONG" or "SHORT".
        quantity: Number of contracts, always positive.
        entry_time: Entry timestamp.
        entry_price: Entry fill price.
        exit_time: Exit timestamp, None for an open trade.
        exit_price: Exit fill price, None for an open trade.
        commission: Commission from the file, None when the cell is blank.
        profit: Gross profit from the file, None when the cell is blank.
    """

    row_number: int
    raw_text: str
    instrument: str
    symbol: str
    direction: str
    quantity: Decimal
    entry_time: datetime
    entry_price: Decimal
    exit_time: Optional[datetime] = None
    exit_price: Optional[Decimal] = None
    commission: Optional[Decimal] = None
    profit: Optional[Decimal] = None
    strategy: Optional[str] = None
    account: Optional[str] = None
    trade_number: Optional[str] = None
    exit_name: Optional[str] = None


@dataclass
class ParseErrorRow:
    """A row that could not be turned into a RawTradeRecord."""

    row_number: int
    raw_text: str
    reason: str


ParsedRow = Union[RawTradeRecord, ParseErrorRow]
