"""DataImport service for database operations."""

from typing import List, Optional
from datetime import datetime

from logger import get_logger
from models.data_import import (
    DataImport,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PARTIAL,
    STATUS_PROCESSING,
)
from models.import_summary import ImportSummary

logger = get_logger(__name__)

_DATA_IMPORT_SELECT_FIELDS = """id, owner_id, filename, session_id, status,
    total_rows, imported_rows, duplicate_rows, error_rows, created_at"""


def status_for_summary(summary: ImportSummary) -> str:
    """Final status of an executed import.

    completed when nothing errored, failed when rows errored and none were
    imported, partial otherwise.
    """
    if summary.errored == 0:
        return STATUS_COMPLETED
    if summary.imported == 0:
        return STATUS_FAILED
    return STATUS_PARTIAL


class DataImportService:
    """Service for managing data import records."""

    def __init__(self, db_manager):
        """Initialize the data import service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def create(
        self, owner_id: str, filename: Optional[str], session_id: Optional[str] = None
    ) -> DataImport:
        """Create a new data import record in the processing state.

        Args:
            owner_id: User running the import.
            filename: Original name of the uploaded file.
            session_id: Import session the rows come from.

        Returns:
            The created DataImport object with id and created_at populated.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO data_imports (owner_id, filename, session_id, status)
                VALUES (?, ?, ?, ?)
                """,
                (owner_id, filename, session_id, STATUS_PROCESSING),
            )
            conn.commit()
            import_id = cursor.lastrowid

            # Fetch the created record to get the created_at timestamp
            cursor = conn.execute(
                f"SELECT {_DATA_IMPORT_SELECT_FIELDS} FROM data_imports WHERE id = ?",
                (import_id,),
            )
            row = cursor.fetchone()

            return self._row_to_data_import(row)

    def complete(self, data_import_id: int, summary: ImportSummary) -> DataImport:
        """Record an execute summary's counts and final status.

        Args:
            data_import_id: The data import to finalize.
            summary: Summary of the executed import.

        Returns:
            The updated DataImport.

        Raises:
            ValueError: If the data import does not exist.
        """
        status = status_for_summary(summary)
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE data_imports
                SET status = ?, total_rows = ?, imported_rows = ?,
                    duplicate_rows = ?, error_rows = ?
                WHERE id = ?
                """,
                (
                    status,
                    summary.total,
                    summary.imported,
                    summary.duplicate,
                    summary.errored,
                    data_import_id,
                ),
            )
            conn.commit()

            if cursor.rowcount == 0:
                raise ValueError(f"Data import with ID {data_import_id} not found")

        logger.info(f"Data import {data_import_id} finished with status {status}")
        return self.find(data_import_id)

    def mark_failed(self, data_import_id: int) -> None:
        with self.db_manager.connect() as conn:
            conn.execute(
                "UPDATE data_imports SET status = ? WHERE id = ?",
                (STATUS_FAILED, data_import_id),
            )
            conn.commit()

    def find(self, data_import_id: int) -> Optional[DataImport]:
        """Get a single data import by ID.

        Args:
            data_import_id: The data import ID to find.

        Returns:
            DataImport object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_DATA_IMPORT_SELECT_FIELDS} FROM data_imports WHERE id = ?",
                (data_import_id,),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_data_import(row)
            return None

    def find_by_owner(self, owner_id: str) -> List[DataImport]:
        """Get all data imports of an owner.

        Args:
            owner_id: The owner to filter by.

        Returns:
            List of DataImport objects, newest first.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_DATA_IMPORT_SELECT_FIELDS}
                FROM data_imports
                WHERE owner_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (owner_id,),
            )
            rows = cursor.fetchall()

            return [self._row_to_data_import(row) for row in rows]

    def _row_to_data_import(self, row: tuple) -> DataImport:
        """Convert a database row to a DataImport object.

        Args:
            row: Database row tuple.

        Returns:
            DataImport object.
        """
        return DataImport(
            id=row[0],
            owner_id=row[1],
            filename=row[2],
            session_id=row[3],
            status=row[4],
            total_rows=row[5],
            imported_rows=row[6],
            duplicate_rows=row[7],
            error_rows=row[8],
            created_at=datetime.fromisoformat(row[9]),
        )
