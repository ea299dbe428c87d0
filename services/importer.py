"""Import engine: parse, validate and deduplicate a session's trade log.

preview() reports what an import would do without writing anything. execute()
runs the same classification and then saves the importable rows.
"""

import hashlib
import json
import sqlite3
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from exceptions import PersistenceError
from ingestion import parse_content
from ingestion.commissions import calculate_commission
from logger import get_logger
from models.import_session import ImportSession, ParseCache
from models.import_summary import (
    ImportOptions,
    ImportSummary,
    STATUS_DUPLICATE,
    STATUS_ERRORED,
    STATUS_IMPORTED,
    SummaryBuilder,
)
from models.raw_trade import ParseErrorRow, ParsedRow, RawTradeRecord
from models.trade import Trade, record_fingerprint

logger = get_logger(__name__)


def validate_record(record: RawTradeRecord) -> Optional[str]:
    """Check the fields every importable trade needs.

    Returns:
        The reason the record is invalid, or None if it is valid.
    """
    if not record.symbol:
        return "Symbol is required"
    if record.direction not in ("LONG", "SHORT"):
        return "Direction must be LONG or SHORT"
    if record.quantity <= 0:
        return "Quantity must be greater than 0"
    if record.entry_price <= 0:
        return "Entry price must be greater than 0"
    if record.exit_time is not None and record.exit_time < record.entry_time:
        return "Exit time cannot be before entry time"
    if record.exit_price is not None and record.exit_price <= 0:
        return "Exit price must be greater than 0"
    return None


def resolve_commission(record: RawTradeRecord, options: ImportOptions) -> Decimal:
    """Commission for a record.

    A positive commission from the file wins, then the caller's default, then
    the per-contract rate for the symbol.
    """
    if record.commission is not None and record.commission > 0:
        return record.commission
    if options.default_commission is not None:
        return options.default_commission
    return calculate_commission(record.symbol, record.quantity)


def parse_cache_key(content: bytes, options: ImportOptions) -> str:
    mapping = json.dumps(options.field_mapping or {}, sort_keys=True)
    digest = hashlib.sha256(content)
    digest.update(mapping.encode("utf-8"))
    return digest.hexdigest()


class ImportEngine:
    """Runs the preview and execute passes for an import session.

    Args:
        trades: TradeService used for fingerprint lookups and saving.
        strategies: StrategyService for strategy name resolution.
        data_imports: DataImportService recording executed imports.
        file_store: FileStore holding the sessions' staged files.
    """

    def __init__(self, trades, strategies, data_imports, file_store):
        self.trades = trades
        self.strategies = strategies
        self.data_imports = data_imports
        self.file_store = file_store

    def parse(
        self, session: ImportSession, options: ImportOptions
    ) -> Tuple[List[ParsedRow], Optional[ParseCache]]:
        """Parse the session's staged file, reusing the session's cached parse.

        Returns:
            The parsed rows and a new ParseCache if the rows were freshly
            parsed (None when the cached parse was reused).

        Raises:
            MissingColumnError: If the header lacks a required column.
        """
        content = self.file_store.read(session.file_path)
        key = parse_cache_key(content, options)

        cache = session.cached_parse
        if cache is not None and cache.content_key == key:
            logger.debug(f"Reusing cached parse for session {session.session_id}")
            return cache.rows, None

        rows = parse_content(content, session.file_format, options.field_mapping)
        return rows, ParseCache(content_key=key, rows=rows)

    def _classify(
        self,
        rows: List[ParsedRow],
        owner_id: str,
        options: ImportOptions,
        builder: SummaryBuilder,
    ) -> List[RawTradeRecord]:
        """Classify every row into the builder.

        Returns:
            Records classified as importable, in file order.
        """
        candidates: List[RawTradeRecord] = []
        for row in rows:
            if isinstance(row, ParseErrorRow):
                builder.record(row.row_number, STATUS_ERRORED)
                builder.error(row.row_number, row.raw_text, row.reason)
                continue

            reason = validate_record(row)
            if reason:
                builder.record(row.row_number, STATUS_ERRORED, row.symbol)
                builder.error(row.row_number, row.raw_text, reason)
                continue

            candidates.append(row)

        fingerprints = [record_fingerprint(r) for r in candidates]
        existing: Set[str] = set()
        if options.skip_duplicates and fingerprints:
            existing = self.trades.find_fingerprints(owner_id, fingerprints)

        importable: List[RawTradeRecord] = []
        seen: Set[str] = set()
        known_strategies: Optional[Set[str]] = None
        for record, fingerprint in zip(candidates, fingerprints):
            if options.skip_duplicates and (fingerprint in existing or fingerprint in seen):
                builder.record(record.row_number, STATUS_DUPLICATE, record.symbol)
                continue
            seen.add(fingerprint)

            builder.record(record.row_number, STATUS_IMPORTED, record.symbol)
            importable.append(record)

            if record.exit_time is None:
                builder.warn(record.row_number, record.raw_text, "Open trade (no exit)")
            if record.commission is None or record.commission <= 0:
                builder.warn(
                    record.row_number,
                    record.raw_text,
                    f"No commission in file, using {resolve_commission(record, options)}",
                )
            if record.strategy and not options.create_missing_strategies:
                if known_strategies is None:
                    known_strategies = {
                        s.name.lower() for s in self.strategies.find_by_owner(owner_id)
                    }
                if record.strategy.strip().lower() not in known_strategies:
                    builder.warn(
                        record.row_number,
                        record.raw_text,
                        f"Strategy '{record.strategy}' not found, trade will have no strategy",
                    )

        return importable

    def preview(
        self, session: ImportSession, rows: List[ParsedRow], options: ImportOptions
    ) -> ImportSummary:
        """Dry-run the import of already parsed rows. Writes nothing.

        Args:
            session: Session the rows come from.
            rows: Output of parse().
            options: Import options.

        Returns:
            Summary with dry_run set.
        """
        builder = SummaryBuilder(dry_run=True)
        self._classify(rows, session.owner_id, options, builder)
        summary = builder.build()
        logger.info(
            f"Previewed session {session.session_id}: {summary.counts()}"
        )
        return summary

    def _resolve_strategies(
        self, records: List[RawTradeRecord], owner_id: str, options: ImportOptions
    ) -> Dict[str, Optional[int]]:
        resolved: Dict[str, Optional[int]] = {}
        for record in records:
            name = record.strategy
            if not name or name.lower() in resolved:
                continue
            if options.create_missing_strategies:
                strategy = self.strategies.find_or_create(owner_id, name)
            else:
                strategy = self.strategies.find_by_name(owner_id, name)
            resolved[name.lower()] = strategy.id if strategy else None
        return resolved

    def execute(
        self, session: ImportSession, rows: List[ParsedRow], options: ImportOptions
    ) -> ImportSummary:
        """Import already parsed rows into the owner's trades.

        Rows that fail to save are reported as errored; the other rows are
        still saved.

        Args:
            session: Session the rows come from.
            rows: Output of parse().
            options: Import options.

        Returns:
            Summary with dry_run unset and data_import_id set.

        Raises:
            PersistenceError: If the batch could not be written at all. The
                data import record is marked failed.
        """
        owner_id = session.owner_id
        builder = SummaryBuilder(dry_run=False)
        importable = self._classify(rows, owner_id, options, builder)

        data_import = None
        try:
            data_import = self.data_imports.create(
                owner_id, session.file_name, session.session_id
            )
            strategy_ids = self._resolve_strategies(importable, owner_id, options)
            trades = [
                Trade.from_record(
                    record,
                    owner_id=owner_id,
                    commission=resolve_commission(record, options),
                    data_import_id=data_import.id,
                    strategy_id=(
                        strategy_ids.get(record.strategy.lower())
                        if record.strategy
                        else None
                    ),
                )
                for record in importable
            ]
            results = self.trades.save_all(trades)
        except PersistenceError:
            self._mark_failed(data_import)
            raise
        except sqlite3.Error as e:
            self._mark_failed(data_import)
            raise PersistenceError(f"Import of session {session.session_id} failed: {e}") from e

        for record, error in zip(importable, results):
            if error is not None:
                builder.record(record.row_number, STATUS_ERRORED, record.symbol)
                builder.error(
                    record.row_number, record.raw_text, f"Failed to save trade: {error}"
                )

        summary = builder.build(data_import_id=data_import.id)
        try:
            self.data_imports.complete(data_import.id, summary)
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to record data import {data_import.id}: {e}"
            ) from e
        logger.info(
            f"Executed session {session.session_id} as data import "
            f"{data_import.id}: {summary.counts()}"
        )
        return summary

    def _mark_failed(self, data_import) -> None:
        """Mark a data import failed, if one was created. Never raises."""
        if data_import is None:
            return
        try:
            self.data_imports.mark_failed(data_import.id)
        except sqlite3.Error as e:
            logger.error(f"Could not mark data import {data_import.id} failed: {e}")
