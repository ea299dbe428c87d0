import csv
import io
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TextIO

from exceptions import MissingColumnError
from logger import get_logger
from ingestion.normalize import (
    extract_symbol,
    parse_decimal,
    parse_direction,
    parse_timestamp,
)
from models.raw_trade import ParsedRow, ParseErrorRow, RawTradeRecord

logger = get_logger(__name__)

DELIMITER = ";"

# Candidate header names per canonical field, first match wins
DEFAULT_FIELD_MAPPING: Dict[str, List[str]] = {
    "instrument": ["Instrument", "Symbol", "Market", "Contract"],
    "direction": ["Market pos.", "Market position", "Direction", "Side", "Position"],
    "quantity": ["Qty", "Quantity", "Position size", "Contracts", "Size"],
    "entry_time": ["Entry time", "Entry Time", "EntryTime", "Fill time"],
    "entry_price": ["Entry price", "Entry Price", "EntryPrice", "Fill price"],
    "exit_time": ["Exit time", "Exit Time", "ExitTime", "Close time"],
    "exit_price": ["Exit price", "Exit Price", "ExitPrice", "Close price"],
    "commission": ["Commission", "Commissions", "Fees"],
    "profit": ["Profit", "P&L", "PnL", "Net profit"],
    "strategy": ["Strategy", "Strategy name", "System"],
    "account": ["Account", "Account name"],
    "trade_number": ["Trade number", "Trade #", "TradeNumber", "Trade ID"],
    "exit_name": ["Exit name", "Exit reason", "Notes"],
}

REQUIRED_FIELDS = ["instrument", "direction", "quantity", "entry_time", "entry_price"]


def merge_field_mapping(
    overrides: Optional[Dict[str, Sequence[str]]] = None,
) -> Dict[str, List[str]]:
    """Combine the default field mapping with caller overrides.

    Args:
        overrides: Canonical field name to a header name or list of header
            names. Each named field's candidates are replaced, not extended.

    Raises:
        ValueError: If an override names an unknown field.
    """
    mapping = {name: list(headers) for name, headers in DEFAULT_FIELD_MAPPING.items()}
    for name, headers in (overrides or {}).items():
        if name not in mapping:
            raise ValueError(f"Unknown field in field mapping: {name}")
        mapping[name] = [headers] if isinstance(headers, str) else list(headers)
    return mapping


def resolve_columns(
    header: Sequence[str], field_mapping: Dict[str, List[str]]
) -> Dict[str, int]:
    """Map canonical field names to column indexes of a header row.

    Raises:
        MissingColumnError: If a required field has no matching column.
    """
    positions = {}
    for index, name in enumerate(header):
        key = str(name).strip().lstrip("\ufeff").lower()
        positions.setdefault(key, index)

    columns = {}
    for field_name, candidates in field_mapping.items():
        for candidate in candidates:
            index = positions.get(candidate.strip().lower())
            if index is not None:
                columns[field_name] = index
                break

    missing = [
        field_mapping[name][0] for name in REQUIRED_FIELDS if name not in columns
    ]
    if missing:
        raise MissingColumnError(missing)
    return columns


def _cell(row: Sequence[str], columns: Dict[str, int], field_name: str) -> str:
    index = columns.get(field_name)
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value).strip()


def _optional_text(row, columns, field_name) -> Optional[str]:
    return _cell(row, columns, field_name) or None


def row_to_record(
    row: Sequence[str], row_number: int, columns: Dict[str, int]
) -> RawTradeRecord:
    """Convert one data row to a RawTradeRecord.

    Raises:
        ValueError: If a required cell is missing or any cell fails to parse.
    """
    raw_text = DELIMITER.join("" if c is None else str(c) for c in row)

    def required(field_name, parser):
        text = _cell(row, columns, field_name)
        if not text:
            raise ValueError(f"{field_name} is required")
        try:
            value = parser(text)
        except ValueError as e:
            raise ValueError(f"Invalid {field_name}: {e}") from e
        if value is None:
            raise ValueError(f"{field_name} is required")
        return value

    def optional(field_name, parser):
        try:
            return parser(_cell(row, columns, field_name))
        except ValueError as e:
            raise ValueError(f"Invalid {field_name}: {e}") from e

    instrument = _cell(row, columns, "instrument")
    quantity = required("quantity", parse_decimal)

    return RawTradeRecord(
        row_number=row_number,
        raw_text=raw_text,
        instrument=instrument,
        symbol=extract_symbol(instrument),
        direction=parse_direction(_cell(row, columns, "direction")),
        quantity=abs(quantity),
        entry_time=required("entry_time", parse_timestamp),
        entry_price=required("entry_price", parse_decimal),
        exit_time=optional("exit_time", parse_timestamp),
        exit_price=optional("exit_price", parse_decimal),
        commission=optional("commission", parse_decimal),
        profit=optional("profit", parse_decimal),
        strategy=_optional_text(row, columns, "strategy"),
        account=_optional_text(row, columns, "account"),
        trade_number=_optional_text(row, columns, "trade_number"),
        exit_name=_optional_text(row, columns, "exit_name"),
    )


def parse_rows(
    rows: Iterable[Sequence[str]],
    field_mapping: Optional[Dict[str, Sequence[str]]] = None,
) -> List[ParsedRow]:
    """Turn a header row plus data rows into parsed records.

    Blank rows are skipped but still counted, so row numbers match the file.

    Raises:
        MissingColumnError: If the header lacks a required column.
    """
    results: List[ParsedRow] = []
    iterator = iter(rows)

    try:
        header = next(iterator)
    except StopIteration:
        logger.info("Empty trade log, nothing to parse")
        return results

    columns = resolve_columns(header, merge_field_mapping(field_mapping))

    row_number = 1
    for row in iterator:
        row_number += 1

        if not row or all(str(c or "").strip() == "" for c in row):
            continue

        try:
            results.append(row_to_record(row, row_number, columns))
        except ValueError as e:
            raw_text = DELIMITER.join("" if c is None else str(c) for c in row)
            logger.warning(f"Row {row_number} could not be parsed: {e}")
            results.append(ParseErrorRow(row_number, raw_text, str(e)))

    parsed = sum(1 for r in results if isinstance(r, RawTradeRecord))
    logger.info(f"Parsed {parsed} trade row(s), {len(results) - parsed} error row(s)")
    return results


def split_lines(source: TextIO) -> Iterator[List[str]]:
    """Split each physical line into cells on its own.

    A stray quote can only affect the line it is on; it never pulls the
    following lines into one field, so every line keeps its row number.
    """
    for line in source:
        yield next(csv.reader([line], delimiter=DELIMITER), [])


def ingest(
    source: TextIO, field_mapping: Optional[Dict[str, Sequence[str]]] = None
) -> List[ParsedRow]:
    """
    Ingest a NinjaTrader 8 trade performance CSV export.

    Expected format:
    - Header row (line 1): Trade number;Instrument;Account;Strategy;Market pos.;Qty;...
    - Trade rows (line 2+), semicolon separated, decimal commas, "$ 262,50" money

    Raises:
        MissingColumnError: If required columns are missing from the header.
    """
    return parse_rows(split_lines(source), field_mapping)


def decode(content: bytes) -> str:
    """Decode file bytes as UTF-8 (BOM tolerated), falling back to Latin-1."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("File is not UTF-8, decoding as Latin-1")
        return content.decode("latin-1")


def parse(
    content: bytes, field_mapping: Optional[Dict[str, Sequence[str]]] = None
) -> List[ParsedRow]:
    """Parse raw CSV bytes. Empty input yields an empty list."""
    text = decode(content)
    if not text.strip():
        return []
    return ingest(io.StringIO(text, newline=""), field_mapping)
