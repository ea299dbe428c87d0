import pytest
import sqlite3
from decimal import Decimal

from exceptions import MissingColumnError, PersistenceError
from ingestion.nt8 import parse
from models.import_summary import (
    ImportOptions,
    STATUS_DUPLICATE,
    STATUS_ERRORED,
    STATUS_IMPORTED,
)
from models.data_import import STATUS_COMPLETED, STATUS_FAILED, STATUS_PARTIAL
from services.importer import resolve_commission, validate_record
from tests.helpers import ES_LONG, NQ_SHORT, three_row_log, trade_log, upload


def _session(services, content, owner_id="alice", file_name="trades.csv"):
    session_id = upload(services, content, owner_id, file_name)
    return services.sessions.get(session_id, owner_id)


def _run(services, session, options=None, execute=False):
    options = options or ImportOptions()
    rows, _ = services.importer.parse(session, options)
    if execute:
        return services.importer.execute(session, rows, options)
    return services.importer.preview(session, rows, options)


def _record(row=ES_LONG):
    return parse(trade_log(row))[0]


class TestValidateRecord:
    """Tests for validate_record."""

    def test_valid(self):
        assert validate_record(_record()) is None

    def test_missing_symbol(self):
        record = _record()
        record.symbol = ""
        assert validate_record(record) == "Symbol is required"

    def test_non_positive_quantity(self):
        record = _record()
        record.quantity = Decimal("0")
        assert "Quantity" in validate_record(record)

    def test_non_positive_entry_price(self):
        record = _record(ES_LONG.replace("5987,25", "0"))
        assert "Entry price" in validate_record(record)

    def test_non_positive_exit_price(self):
        record = _record(ES_LONG.replace("5992,50", "-1"))
        assert "Exit price" in validate_record(record)

    def test_exit_before_entry(self):
        record = _record(ES_LONG.replace("3/10/2025 9:45:00", "3/10/2025 9:00:00"))
        assert validate_record(record) == "Exit time cannot be before entry time"


class TestResolveCommission:
    """Tests for commission resolution."""

    def test_file_commission_wins(self):
        record = _record()
        options = ImportOptions(default_commission=Decimal("1.00"))

        assert resolve_commission(record, options) == Decimal("4.20")

    def test_default_commission_when_file_has_none(self):
        record = _record(ES_LONG.replace("$ 4,20", ""))
        options = ImportOptions(default_commission=Decimal("2.50"))

        assert resolve_commission(record, options) == Decimal("2.50")

    def test_zero_file_commission_falls_back(self):
        record = _record(ES_LONG.replace("$ 4,20", "$ 0,00"))

        assert resolve_commission(record, ImportOptions()) == Decimal("4.20")

    def test_rate_table_by_symbol_and_quantity(self):
        """Test micro contracts use the micro rate times quantity."""
        row = ES_LONG.replace("ES SEP25", "MES SEP25").replace(";1;3/10", ";3;3/10")
        record = _record(row.replace("$ 4,20", ""))

        assert resolve_commission(record, ImportOptions()) == Decimal("3.60")


class TestPreview:
    """Tests for ImportEngine.preview."""

    def test_three_row_scenario(self, services):
        """Test two valid trades and one malformed row."""
        session = _session(services, three_row_log())

        summary = _run(services, session)

        assert summary.counts() == {
            "total": 3,
            "imported": 2,
            "skipped": 0,
            "duplicate": 0,
            "errored": 1,
        }
        assert summary.dry_run is True
        assert summary.data_import_id is None
        assert len(summary.errors) == 1
        assert summary.errors[0].row_number == 4
        assert "entry_price" in summary.errors[0].reason

    def test_preview_is_idempotent(self, services):
        session = _session(services, three_row_log())

        assert _run(services, session) == _run(services, session)

    def test_preview_writes_nothing(self, services):
        """Test preview leaves trades and import history untouched."""
        session = _session(services, three_row_log())

        _run(services, session, ImportOptions(create_missing_strategies=True))

        assert services.trades.count_by_owner("alice") == 0
        assert services.data_imports.find_by_owner("alice") == []
        assert services.strategies.find_by_owner("alice") == []

    def test_row_outcomes_in_file_order(self, services):
        session = _session(services, three_row_log())

        summary = _run(services, session)

        assert [(r.row_number, r.status) for r in summary.rows] == [
            (2, STATUS_IMPORTED),
            (3, STATUS_IMPORTED),
            (4, STATUS_ERRORED),
        ]

    def test_in_file_repeat_is_duplicate(self, services):
        session = _session(services, trade_log(ES_LONG, ES_LONG))

        summary = _run(services, session)

        assert summary.imported == 1
        assert summary.duplicate == 1
        assert summary.skipped == 1

    def test_in_file_repeat_kept_without_skip(self, services):
        session = _session(services, trade_log(ES_LONG, ES_LONG))

        summary = _run(services, session, ImportOptions(skip_duplicates=False))

        assert summary.imported == 2
        assert summary.duplicate == 0

    def test_warnings_not_counted(self, services):
        """Test open trades and missing commission warn without erroring."""
        row = ES_LONG.split(";")
        row[8] = ""
        row[9] = ""
        row[14] = ""
        session = _session(services, trade_log(";".join(row)))

        summary = _run(services, session)

        assert summary.imported == 1
        assert summary.errored == 0
        reasons = [w.reason for w in summary.warnings]
        assert "Open trade (no exit)" in reasons
        assert any("No commission" in r for r in reasons)

    def test_unknown_strategy_warns(self, services):
        session = _session(services, trade_log(ES_LONG))

        summary = _run(services, session)

        assert any("Breakout" in w.reason for w in summary.warnings)

    def test_known_strategy_does_not_warn(self, services):
        services.strategies.create("alice", "breakout")
        session = _session(services, trade_log(ES_LONG))

        summary = _run(services, session)

        assert not any("Breakout" in w.reason for w in summary.warnings)

    def test_missing_column_propagates(self, services):
        session = _session(services, trade_log("ES;1", header="Instrument;Qty"))

        with pytest.raises(MissingColumnError):
            _run(services, session)

    def test_parse_cache_reused(self, services):
        """Test a session's cached parse is used while the file is unchanged."""
        session = _session(services, three_row_log())
        options = ImportOptions()

        rows, cache = services.importer.parse(session, options)
        assert cache is not None
        session.cached_parse = cache

        cached_rows, new_cache = services.importer.parse(session, options)
        assert new_cache is None
        assert cached_rows is rows

        # A different field mapping is a different parse
        _, other = services.importer.parse(
            session, ImportOptions(field_mapping={"account": ["Account"]})
        )
        assert other is not None


class TestExecute:
    """Tests for ImportEngine.execute."""

    def test_three_row_scenario(self, services):
        """Test the malformed row is reported and the valid rows committed."""
        session = _session(services, three_row_log())

        summary = _run(services, session, execute=True)

        assert summary.imported == 2
        assert summary.errored == 1
        assert summary.duplicate == 0
        assert summary.dry_run is False
        assert services.trades.count_by_owner("alice") == 2

        data_import = services.data_imports.find(summary.data_import_id)
        assert data_import.status == STATUS_PARTIAL
        assert data_import.imported_rows == 2
        assert data_import.error_rows == 1
        assert data_import.session_id == session.session_id

    def test_second_file_upload_is_duplicate(self, services):
        """Test the same file on a new session imports nothing new."""
        _run(services, _session(services, three_row_log()), execute=True)

        summary = _run(services, _session(services, three_row_log()), execute=True)

        assert summary.imported == 0
        assert summary.errored == 1
        assert summary.duplicate == 2
        assert services.trades.count_by_owner("alice") == 2
        assert services.data_imports.find(summary.data_import_id).status == STATUS_FAILED

    def test_duplicates_committed_without_skip(self, services):
        _run(services, _session(services, trade_log(ES_LONG)), execute=True)

        summary = _run(
            services,
            _session(services, trade_log(ES_LONG)),
            ImportOptions(skip_duplicates=False),
            execute=True,
        )

        assert summary.imported == 1
        assert services.trades.count_by_owner("alice") == 2

    def test_duplicates_scoped_to_owner(self, services):
        _run(services, _session(services, trade_log(ES_LONG)), execute=True)

        summary = _run(services, _session(services, trade_log(ES_LONG), "bob"), execute=True)

        assert summary.imported == 1

    def test_completed_status(self, services):
        summary = _run(services, _session(services, trade_log(ES_LONG, NQ_SHORT)), execute=True)

        assert services.data_imports.find(summary.data_import_id).status == STATUS_COMPLETED

    def test_commission_and_data_import_saved(self, services):
        options = ImportOptions(default_commission=Decimal("1.50"))
        row = ES_LONG.replace("$ 4,20", "")

        summary = _run(services, _session(services, trade_log(row)), options, execute=True)

        trade = services.trades.find_by_data_import(summary.data_import_id)[0]
        assert trade.commission == Decimal("1.5")
        assert trade.pnl == Decimal("262.5")
        assert trade.result == "WIN"

    def test_strategies_created_when_asked(self, services):
        options = ImportOptions(create_missing_strategies=True)

        _run(services, _session(services, trade_log(ES_LONG, NQ_SHORT)), options, execute=True)

        strategies = services.strategies.find_by_owner("alice")
        assert [s.name for s in strategies] == ["Breakout"]
        trades = services.trades.find_by_owner("alice")
        assert {t.strategy_id for t in trades} == {strategies[0].id}

    def test_strategies_not_created_by_default(self, services):
        _run(services, _session(services, trade_log(ES_LONG)), execute=True)

        assert services.strategies.find_by_owner("alice") == []
        assert services.trades.find_by_owner("alice")[0].strategy_id is None

    def test_existing_strategy_linked(self, services):
        strategy = services.strategies.create("alice", "Breakout")

        _run(services, _session(services, trade_log(ES_LONG)), execute=True)

        assert services.trades.find_by_owner("alice")[0].strategy_id == strategy.id

    def test_row_persistence_failure_continues(self, services):
        """Test a row the store rejects is errored and the rest still saved."""
        real_save_all = services.trades.save_all

        def failing_save_all(trades):
            results = real_save_all(trades[1:])
            return [PersistenceError("disk full")] + results

        services.trades.save_all = failing_save_all
        session = _session(services, trade_log(ES_LONG, NQ_SHORT))

        summary = _run(services, session, execute=True)

        assert summary.imported == 1
        assert summary.errored == 1
        assert summary.errors[0].row_number == 2
        assert "disk full" in summary.errors[0].reason
        assert [r.status for r in summary.rows] == [STATUS_ERRORED, STATUS_IMPORTED]
        assert services.data_imports.find(summary.data_import_id).status == STATUS_PARTIAL

    def test_batch_failure_marks_import_failed(self, services):
        def broken_save_all(trades):
            raise PersistenceError("database is locked")

        services.trades.save_all = broken_save_all
        session = _session(services, trade_log(ES_LONG))

        with pytest.raises(PersistenceError):
            _run(services, session, execute=True)

        data_import = services.data_imports.find_by_owner("alice")[0]
        assert data_import.status == STATUS_FAILED

    def test_data_import_create_failure_is_persistence_error(self, services):
        """Test a database failure opening the import record is reported as such."""
        def broken_create(owner_id, filename, session_id=None):
            raise sqlite3.OperationalError("database is locked")

        services.data_imports.create = broken_create
        session = _session(services, trade_log(ES_LONG))

        with pytest.raises(PersistenceError, match="database is locked"):
            _run(services, session, execute=True)

        assert services.trades.count_by_owner("alice") == 0

    def test_trade_save_database_error_marks_import_failed(self, services):
        def broken_save_all(trades):
            raise sqlite3.OperationalError("disk I/O error")

        services.trades.save_all = broken_save_all
        session = _session(services, trade_log(ES_LONG))

        with pytest.raises(PersistenceError) as excinfo:
            _run(services, session, execute=True)

        assert "strategies" not in str(excinfo.value)
        assert services.data_imports.find_by_owner("alice")[0].status == STATUS_FAILED
