"""Helper utilities for tests."""

import io
import threading
from datetime import datetime, timedelta
from pathlib import Path
import sqlite3

from cli.migrate import apply_pending_migrations

NT8_HEADER = (
    "Trade number;Instrument;Account;Strategy;Market pos.;Qty;Entry time;"
    "Entry price;Exit time;Exit price;Exit name;Entry name;Profit;Cum. profit;"
    "Commission;Description;Connection;Trade duration"
)

ES_LONG = (
    "1;ES SEP25;Sim101;Breakout;Long;1;3/10/2025 9:30:00;5987,25;"
    "3/10/2025 9:45:00;5992,50;Profit target;Entry;$ 262,50;$ 262,50;"
    "$ 4,20;;Sim;00:15:00"
)

NQ_SHORT = (
    "2;NQ SEP25;Sim101;Breakout;Short;2;3/10/2025 10:00:00;21000,00;"
    "3/10/2025 10:20:00;21010,00;Stop loss;Entry;-$ 400,00;-$ 137,50;"
    "$ 8,40;;Sim;00:20:00"
)

BAD_ENTRY_PRICE = (
    "3;MES SEP25;Sim101;Breakout;Long;1;3/10/2025 11:00:00;abc;"
    "3/10/2025 11:05:00;5990,00;Exit;Entry;$ 10,00;-$ 127,50;"
    "$ 1,20;;Sim;00:05:00"
)


def run_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> None:
    """Run all SQL migrations in order.

    Args:
        conn: SQLite connection to run migrations against.
        migrations_dir: Path to directory containing .sql migration files.
    """
    apply_pending_migrations(conn, migrations_dir)


def trade_log(*rows: str, header: str = NT8_HEADER) -> bytes:
    """Build a semicolon CSV trade log from a header and data rows."""
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


def three_row_log() -> bytes:
    """Two valid trades and one with a non-numeric entry price."""
    return trade_log(ES_LONG, NQ_SHORT, BAD_ENTRY_PRICE)


def upload(services, content: bytes, owner_id: str = "alice", file_name: str = "trades.csv") -> str:
    """Create an import session from in-memory bytes."""
    return services.imports.create_session(io.BytesIO(content), file_name, owner_id)


class FakeClock:
    """Callable clock for the session registry, advanced by hand."""

    def __init__(self, now: datetime):
        self.now = now
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, delta: timedelta) -> None:
        with self._lock:
            self.now = self.now + delta
