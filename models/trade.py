from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import hashlib
import uuid

from models.raw_trade import RawTradeRecord


def _decimal_key(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    # normalize() turns 5987.250 and 5987.25 into the same text
    return format(value.normalize(), "f")


def _time_key(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def compute_fingerprint(
    symbol: str,
    entry_time: datetime,
    exit_time: Optional[datetime],
    quantity: Decimal,
    entry_price: Decimal,
) -> str:
    """Compute the deduplication fingerprint of a trade.

    Two trades with the same symbol, entry/exit timestamps, quantity and entry
    price are considered the same trade.

    Returns:
        sha256 hex digest.
    """
    content = "|".join(
        [
            symbol.upper(),
            _time_key(entry_time),
            _time_key(exit_time),
            _decimal_key(quantity),
            _decimal_key(entry_price),
        ]
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def record_fingerprint(record: RawTradeRecord) -> str:
    """Fingerprint of a parsed row."""
    return compute_fingerprint(
        record.symbol,
        record.entry_time,
        record.exit_time,
        record.quantity,
        record.entry_price,
    )


@dataclass
class Trade:
    id: str  # uuid4 hex
    owner_id: str
    symbol: str
    instrument: str
    direction: str  # 'LONG' or 'SHORT'
    quantity: Decimal
    entry_time: datetime
    entry_price: Decimal
    exit_time: Optional[datetime]
    exit_price: Optional[Decimal]
    commission: Decimal
    pnl: Optional[Decimal]
    fingerprint: str
    data_import_id: Optional[int] = None
    strategy_id: Optional[int] = None
    account: Optional[str] = None
    trade_number: Optional[str] = None
    exit_name: Optional[str] = None
    raw_data: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def net_pnl(self) -> Optional[Decimal]:
        if self.pnl is None:
            return None
        return self.pnl - self.commission

    @property
    def result(self) -> Optional[str]:
        """'WIN', 'LOSS' or 'BREAKEVEN' from net P&L, None without P&L."""
        net = self.net_pnl
        if net is None:
            return None
        if net > 0:
            return "WIN"
        if net < 0:
            return "LOSS"
        return "BREAKEVEN"

    @classmethod
    def from_record(
        cls,
        record: RawTradeRecord,
        owner_id: str,
        commission: Decimal,
        data_import_id: Optional[int] = None,
        strategy_id: Optional[int] = None,
    ) -> "Trade":
        """Create a Trade from a parsed row with a fresh ID and its fingerprint."""
        return cls(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            symbol=record.symbol,
            instrument=record.instrument,
            direction=record.direction,
            quantity=record.quantity,
            entry_time=record.entry_time,
            entry_price=record.entry_price,
            exit_time=record.exit_time,
            exit_price=record.exit_price,
            commission=commission,
            pnl=record.profit,
            fingerprint=record_fingerprint(record),
            data_import_id=data_import_id,
            strategy_id=strategy_id,
            account=record.account,
            trade_number=record.trade_number,
            exit_name=record.exit_name,
            raw_data=record.raw_text,
        )
