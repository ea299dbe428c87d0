"""DataImport model recording one executed import."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


@dataclass
class DataImport:
    """Represents an executed import of a trade log.

    Attributes:
        id: Unique identifier (auto-generated).
        owner_id: Identity of the user who ran the import.
        filename: Original name of the uploaded file.
        session_id: Import session the rows came from.
        status: One of processing, completed, partial, failed.
        total_rows: Rows in the file.
        imported_rows: Rows committed as trades.
        duplicate_rows: Rows skipped as duplicates.
        error_rows: Rows that failed to parse, validate or save.
        created_at: Timestamp when the import was created.
    """

    id: int
    owner_id: str
    filename: Optional[str]
    session_id: Optional[str]
    status: str
    total_rows: int
    imported_rows: int
    duplicate_rows: int
    error_rows: int
    created_at: datetime
