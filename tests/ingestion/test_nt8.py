import io
import pytest
from datetime import datetime
from decimal import Decimal

from exceptions import MissingColumnError
from ingestion.nt8 import (
    DEFAULT_FIELD_MAPPING,
    ingest,
    merge_field_mapping,
    parse,
    resolve_columns,
    row_to_record,
)
from models.raw_trade import ParseErrorRow, RawTradeRecord
from tests.helpers import (
    BAD_ENTRY_PRICE,
    ES_LONG,
    NQ_SHORT,
    NT8_HEADER,
    three_row_log,
    trade_log,
)


def _columns():
    return resolve_columns(NT8_HEADER.split(";"), merge_field_mapping())


class TestRowToRecord:
    """Tests for row_to_record function."""

    def test_parse_long_trade(self):
        """Test parsing a complete long trade row."""
        record = row_to_record(ES_LONG.split(";"), 2, _columns())

        assert record.row_number == 2
        assert record.instrument == "ES SEP25"
        assert record.symbol == "ES"
        assert record.direction == "LONG"
        assert record.quantity == Decimal("1")
        assert record.entry_time == datetime(2025, 3, 10, 9, 30)
        assert record.entry_price == Decimal("5987.25")
        assert record.exit_time == datetime(2025, 3, 10, 9, 45)
        assert record.exit_price == Decimal("5992.50")
        assert record.profit == Decimal("262.50")
        assert record.commission == Decimal("4.20")
        assert record.strategy == "Breakout"
        assert record.account == "Sim101"
        assert record.trade_number == "1"
        assert record.exit_name == "Profit target"
        assert record.raw_text == ES_LONG

    def test_parse_short_trade_negative_profit(self):
        """Test parsing a short trade with negative money."""
        record = row_to_record(NQ_SHORT.split(";"), 3, _columns())

        assert record.direction == "SHORT"
        assert record.quantity == Decimal("2")
        assert record.profit == Decimal("-400.00")

    def test_open_trade_has_no_exit(self):
        """Test a row without exit cells parses as an open trade."""
        row = ES_LONG.split(";")
        row[8] = ""
        row[9] = ""

        record = row_to_record(row, 2, _columns())

        assert record.exit_time is None
        assert record.exit_price is None

    def test_negative_quantity_is_made_positive(self):
        row = ES_LONG.split(";")
        row[5] = "-2"

        record = row_to_record(row, 2, _columns())

        assert record.quantity == Decimal("2")

    def test_invalid_entry_price_raises(self):
        """Test a non-numeric entry price names the field."""
        with pytest.raises(ValueError, match="entry_price"):
            row_to_record(BAD_ENTRY_PRICE.split(";"), 4, _columns())

    def test_missing_entry_time_raises(self):
        row = ES_LONG.split(";")
        row[6] = ""

        with pytest.raises(ValueError, match="entry_time is required"):
            row_to_record(row, 2, _columns())

    def test_unparseable_optional_cell_raises(self):
        """Test a present but unreadable optional cell is a row error."""
        row = ES_LONG.split(";")
        row[14] = "lots"

        with pytest.raises(ValueError, match="commission"):
            row_to_record(row, 2, _columns())

    def test_short_row_treats_missing_cells_as_blank(self):
        """Test rows with fewer cells than the header."""
        row = ES_LONG.split(";")[:8]

        record = row_to_record(row, 2, _columns())

        assert record.exit_time is None
        assert record.commission is None


class TestResolveColumns:
    """Tests for header resolution and field mapping."""

    def test_header_with_bom_and_padding(self):
        """Test the header BOM and surrounding spaces are ignored."""
        header = ["\ufeffInstrument ", " Market pos.", "Qty", "Entry time", "Entry price"]

        columns = resolve_columns(header, merge_field_mapping())

        assert columns["instrument"] == 0
        assert columns["direction"] == 1
        assert "exit_time" not in columns

    def test_alternative_header_names(self):
        """Test default candidates beyond the NinjaTrader names."""
        header = ["Symbol", "Side", "Quantity", "Fill time", "Fill price"]

        columns = resolve_columns(header, merge_field_mapping())

        assert columns == {
            "instrument": 0,
            "direction": 1,
            "quantity": 2,
            "entry_time": 3,
            "entry_price": 4,
        }

    def test_missing_required_columns(self):
        """Test a header without required columns raises MissingColumnError."""
        with pytest.raises(MissingColumnError) as exc_info:
            resolve_columns(["Instrument", "Qty"], merge_field_mapping())

        assert exc_info.value.missing == ["Market pos.", "Entry time", "Entry price"]

    def test_override_replaces_candidates(self):
        """Test a field mapping override replaces the defaults for that field."""
        mapping = merge_field_mapping({"instrument": ["Ticker"]})

        assert mapping["instrument"] == ["Ticker"]
        assert mapping["quantity"] == DEFAULT_FIELD_MAPPING["quantity"]

    def test_override_accepts_single_header(self):
        assert merge_field_mapping({"quantity": "Lots"})["quantity"] == ["Lots"]

    def test_override_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown field"):
            merge_field_mapping({"colour": ["Red"]})


class TestParse:
    """Tests for parsing whole CSV files."""

    def test_three_row_log(self):
        """Test valid rows and a malformed row keep file order and row numbers."""
        rows = parse(three_row_log())

        assert len(rows) == 3
        assert isinstance(rows[0], RawTradeRecord)
        assert isinstance(rows[1], RawTradeRecord)
        assert isinstance(rows[2], ParseErrorRow)
        assert [r.row_number for r in rows] == [2, 3, 4]
        assert "entry_price" in rows[2].reason
        assert rows[2].raw_text == BAD_ENTRY_PRICE

    def test_blank_lines_skipped_but_counted(self):
        """Test blank lines keep the following row numbers aligned with the file."""
        content = trade_log(ES_LONG, "", ";;;", NQ_SHORT)

        rows = parse(content)

        assert [r.row_number for r in rows] == [2, 5]

    def test_empty_input(self):
        """Test empty input yields no rows."""
        assert parse(b"") == []
        assert parse(b"  \n") == []

    def test_header_only(self):
        assert parse(trade_log()) == []

    def test_missing_column_fails_whole_file(self):
        content = trade_log("ES SEP25;1", header="Instrument;Qty")

        with pytest.raises(MissingColumnError):
            parse(content)

    def test_utf8_bom(self):
        """Test a UTF-8 BOM before the header is tolerated."""
        content = b"\xef\xbb\xbf" + trade_log(ES_LONG)

        rows = parse(content)

        assert len(rows) == 1
        assert rows[0].symbol == "ES"

    def test_latin1_fallback(self):
        """Test files that are not UTF-8 decode as Latin-1."""
        row = ES_LONG.replace("Profit target", "Cl\xf4ture")
        content = (NT8_HEADER + "\n" + row + "\n").encode("latin-1")

        rows = parse(content)

        assert rows[0].exit_name == "Cl\xf4ture"

    def test_custom_field_mapping(self):
        """Test parsing a file whose instrument column has another name."""
        header = NT8_HEADER.replace("Instrument", "Ticker")

        rows = parse(trade_log(ES_LONG, header=header), {"instrument": ["Ticker"]})

        assert rows[0].symbol == "ES"

    def test_unbalanced_quote_stays_on_its_line(self):
        """Test an opening quote in a note does not swallow the rows after it."""
        row = ES_LONG.split(";")
        row[15] = '"half quoted'

        rows = parse(trade_log(";".join(row), NQ_SHORT, BAD_ENTRY_PRICE))

        assert [r.row_number for r in rows] == [2, 3, 4]
        assert isinstance(rows[0], RawTradeRecord)
        assert rows[0].symbol == "ES"
        assert rows[1].symbol == "NQ"
        assert isinstance(rows[2], ParseErrorRow)

    def test_unbalanced_quote_in_required_cell_is_row_error(self):
        row = ES_LONG.replace("ES SEP25", '"ES SEP25')

        rows = parse(trade_log(row, NQ_SHORT))

        assert [r.row_number for r in rows] == [2, 3]
        assert isinstance(rows[0], ParseErrorRow)
        assert isinstance(rows[1], RawTradeRecord)

    def test_quoted_cell_with_delimiter(self):
        row = ES_LONG.replace("Profit target", '"Target; first"')

        rows = parse(trade_log(row))

        assert rows[0].exit_name == "Target; first"

    def test_ingest_reads_text_stream(self):
        source = io.StringIO(NT8_HEADER + "\n" + NQ_SHORT + "\n")

        rows = ingest(source)

        assert len(rows) == 1
        assert rows[0].symbol == "NQ"
