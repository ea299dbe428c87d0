import io
from typing import Dict, List, Optional, Sequence

import pandas as pd

from ingestion.nt8 import parse_rows
from logger import get_logger
from models.raw_trade import ParsedRow

logger = get_logger(__name__)

_ENGINES = {
    "xlsx": "openpyxl",
    "xls": "xlrd",
}


def read_sheet(content: bytes, file_format: str) -> List[List[str]]:
    """Read the first worksheet of an Excel file as rows of cell text.

    Args:
        content: Raw workbook bytes.
        file_format: "xlsx" or "xls", selects the pandas engine.

    Returns:
        All rows including the header row, blank cells as "".
    """
    df = pd.read_excel(
        io.BytesIO(content),
        sheet_name=0,
        header=None,
        dtype=str,
        keep_default_na=False,
        engine=_ENGINES.get(file_format),
    )
    logger.info(f"Read Excel sheet with {len(df)} rows and {len(df.columns)} columns")
    return df.values.tolist()


def parse(
    content: bytes,
    field_mapping: Optional[Dict[str, Sequence[str]]] = None,
    file_format: str = "xlsx",
) -> List[ParsedRow]:
    """
    Parse a NinjaTrader trade performance export saved as an Excel workbook.

    The first sheet must hold the same columns as the CSV export. Cells are read
    as text so locale-formatted numbers go through the same normalization as
    the CSV parser.

    Raises:
        MissingColumnError: If required columns are missing from the header.
    """
    if not content:
        return []
    return parse_rows(read_sheet(content, file_format), field_mapping)
