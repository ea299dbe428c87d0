"""Trade service for database operations."""

import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from db.manager import transaction
from exceptions import PersistenceError
from logger import get_logger
from models.trade import Trade

logger = get_logger(__name__)

# SQL Query Constants
_TRADE_FIELDS = """id, owner_id, data_import_id, strategy_id, symbol, instrument,
    direction, quantity, entry_time, entry_price, exit_time, exit_price,
    commission, pnl, net_pnl, result, account, trade_number, exit_name,
    fingerprint, raw_data"""

_TRADE_SELECT_FIELDS = f"{_TRADE_FIELDS}, created_at"

# Automatically generate placeholders from field count
_TRADE_INSERT_PLACEHOLDERS = f"({', '.join(['?'] * len(_TRADE_FIELDS.split(',')))})"


def _to_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _to_decimal(value) -> Optional[Decimal]:
    # REAL columns come back as float; go through str to keep 5987.25 exact
    return Decimal(str(value)) if value is not None else None


class TradeService:
    """Service for managing trades."""

    def __init__(self, db_manager):
        """Initialize the trade service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def _trade_params(self, trade: Trade) -> tuple:
        return (
            trade.id,
            trade.owner_id,
            trade.data_import_id,
            trade.strategy_id,
            trade.symbol,
            trade.instrument,
            trade.direction,
            float(trade.quantity),
            trade.entry_time.isoformat(),
            float(trade.entry_price),
            trade.exit_time.isoformat() if trade.exit_time else None,
            _to_float(trade.exit_price),
            float(trade.commission),
            _to_float(trade.pnl),
            _to_float(trade.net_pnl),
            trade.result,
            trade.account,
            trade.trade_number,
            trade.exit_name,
            trade.fingerprint,
            trade.raw_data,
        )

    def create(self, trade: Trade) -> Trade:
        """Create a single trade in the database.

        Args:
            trade: Trade object to insert.

        Returns:
            The same Trade object.

        Raises:
            PersistenceError: If the insert fails.
        """
        errors = self.save_all([trade])
        if errors[0] is not None:
            raise errors[0]
        return trade

    def save_all(self, trades: List[Trade]) -> List[Optional[PersistenceError]]:
        """Insert trades in one database transaction, continuing past failures.

        Each insert runs inside its own savepoint, so a failing row is rolled
        back alone and the rows before and after it are still committed.

        Args:
            trades: Trades to insert, in order.

        Returns:
            One entry per trade: None if it was saved, otherwise the
            PersistenceError explaining why it was not.

        Raises:
            PersistenceError: If the transaction itself cannot be opened or
                committed. No trade is saved in that case.
        """
        if not trades:
            return []

        results: List[Optional[PersistenceError]] = []
        try:
            with self.db_manager.connect() as conn:
                with transaction(conn):
                    for trade in trades:
                        conn.execute("SAVEPOINT trade_row")
                        try:
                            conn.execute(
                                f"""
                                INSERT INTO trades ({_TRADE_FIELDS})
                                VALUES {_TRADE_INSERT_PLACEHOLDERS}
                                """,
                                self._trade_params(trade),
                            )
                        except sqlite3.Error as e:
                            conn.execute("ROLLBACK TO SAVEPOINT trade_row")
                            logger.warning(
                                f"Failed to save trade {trade.symbol} "
                                f"{trade.entry_time.isoformat()}: {e}"
                            )
                            results.append(PersistenceError(str(e)))
                        else:
                            results.append(None)
                        conn.execute("RELEASE SAVEPOINT trade_row")
        except sqlite3.Error as e:
            logger.error(f"Trade batch transaction failed: {e}")
            raise PersistenceError(f"Failed to save trades: {e}") from e

        saved = sum(1 for r in results if r is None)
        logger.info(f"Saved {saved} of {len(trades)} trade(s)")
        return results

    def find(self, trade_id: str) -> Optional[Trade]:
        """Get a single trade by ID.

        Args:
            trade_id: The trade ID to find.

        Returns:
            Trade object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_TRADE_SELECT_FIELDS} FROM trades WHERE id = ?",
                (trade_id,),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_trade(row)
            return None

    def find_by_owner(self, owner_id: str, limit: Optional[int] = None) -> List[Trade]:
        """Get trades for an owner, newest entry first.

        Args:
            owner_id: Owner to filter by.
            limit: Optional maximum number of trades.

        Returns:
            List of Trade objects.
        """
        query = f"""
            SELECT {_TRADE_SELECT_FIELDS}
            FROM trades
            WHERE owner_id = ?
            ORDER BY entry_time DESC
        """
        params: tuple = (owner_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (owner_id, limit)

        with self.db_manager.connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_trade(row) for row in cursor.fetchall()]

    def find_by_data_import(self, data_import_id: int) -> List[Trade]:
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_TRADE_SELECT_FIELDS}
                FROM trades
                WHERE data_import_id = ?
                ORDER BY entry_time
                """,
                (data_import_id,),
            )
            return [self._row_to_trade(row) for row in cursor.fetchall()]

    def find_fingerprints(
        self, owner_id: str, fingerprints: Optional[Iterable[str]] = None
    ) -> Set[str]:
        """Get the fingerprints of an owner's stored trades.

        Args:
            owner_id: Owner to filter by.
            fingerprints: If given, only these fingerprints are looked up.

        Returns:
            Set of fingerprints already stored for the owner.
        """
        with self.db_manager.connect() as conn:
            if fingerprints is None:
                cursor = conn.execute(
                    "SELECT fingerprint FROM trades WHERE owner_id = ?", (owner_id,)
                )
                return {row[0] for row in cursor.fetchall()}

            wanted = list(set(fingerprints))
            found: Set[str] = set()
            # Stay under SQLite's bound parameter limit
            for start in range(0, len(wanted), 500):
                batch = wanted[start : start + 500]
                placeholders = ", ".join(["?"] * len(batch))
                cursor = conn.execute(
                    f"""
                    SELECT fingerprint FROM trades
                    WHERE owner_id = ? AND fingerprint IN ({placeholders})
                    """,
                    (owner_id, *batch),
                )
                found.update(row[0] for row in cursor.fetchall())
            return found

    def count_by_owner(self, owner_id: str) -> int:
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM trades WHERE owner_id = ?", (owner_id,)
            )
            return cursor.fetchone()[0]

    def _row_to_trade(self, row: tuple) -> Trade:
        """Convert a database row to a Trade object.

        Args:
            row: Database row tuple in _TRADE_SELECT_FIELDS order.

        Returns:
            Trade object. net_pnl and result are recomputed from pnl and
            commission.
        """
        return Trade(
            id=row[0],
            owner_id=row[1],
            data_import_id=row[2],
            strategy_id=row[3],
            symbol=row[4],
            instrument=row[5],
            direction=row[6],
            quantity=_to_decimal(row[7]),
            entry_time=datetime.fromisoformat(row[8]),
            entry_price=_to_decimal(row[9]),
            exit_time=datetime.fromisoformat(row[10]) if row[10] else None,
            exit_price=_to_decimal(row[11]),
            commission=_to_decimal(row[12]),
            pnl=_to_decimal(row[13]),
            account=row[16],
            trade_number=row[17],
            exit_name=row[18],
            fingerprint=row[19],
            raw_data=row[20],
            created_at=datetime.fromisoformat(row[21]) if row[21] else None,
        )
