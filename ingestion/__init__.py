import ingestion.excel as excel
import ingestion.nt8 as nt8
from models.import_session import FileFormat

_PARSER_MODULES = {
    FileFormat.CSV: nt8,
    FileFormat.XLS: excel,
    FileFormat.XLSX: excel,
}


def get_parser_module(file_format: FileFormat):
    """Get the parser module for a file format."""
    if file_format not in _PARSER_MODULES:
        raise ValueError(f"No parser for file format: {file_format}")
    return _PARSER_MODULES[file_format]


def get_supported_formats():
    """Get list of file formats that have a parser."""
    return list(_PARSER_MODULES.keys())


def parse_content(content: bytes, file_format: FileFormat, field_mapping=None):
    """Parse file bytes with the parser registered for file_format.

    Returns:
        Ordered list of RawTradeRecord and ParseErrorRow.
    """
    module = get_parser_module(file_format)
    if module is excel:
        return excel.parse(content, field_mapping, file_format=file_format.value)
    return module.parse(content, field_mapping)
