"""ImportSession model representing one staged upload."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from exceptions import UnsupportedFormatError
from models.raw_trade import ParsedRow


class FileFormat(str, Enum):
    CSV = "csv"
    XLS = "xls"
    XLSX = "xlsx"


# .txt exports are the same semicolon CSV with a different extension
_EXTENSION_FORMATS = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".xls": FileFormat.XLS,
    ".xlsx": FileFormat.XLSX,
}


def supported_extensions() -> List[str]:
    """Get the list of accepted upload extensions."""
    return sorted(_EXTENSION_FORMATS)


def detect_file_format(file_name: str) -> FileFormat:
    """Derive the file format from a file name's extension.

    Args:
        file_name: Client-side file name, e.g. "NinjaTrader Grid.csv".

    Returns:
        The matching FileFormat.

    Raises:
        UnsupportedFormatError: If the extension is not accepted.
    """
    extension = os.path.splitext(file_name)[1].lower()
    if extension not in _EXTENSION_FORMATS:
        raise UnsupportedFormatError(file_name, extension)
    return _EXTENSION_FORMATS[extension]


@dataclass
class ParseCache:
    """Memoized parse result, valid while content_key matches."""

    content_key: str
    rows: List[ParsedRow]


@dataclass
class ImportSession:
    """A short-lived, owner-bound handle on a staged upload.

    Attributes:
        session_id: Opaque unique token.
        owner_id: Identity of the uploading user.
        file_path: Location of the staged file, owned by this session.
        file_name: Original file name as uploaded.
        file_format: Format derived from the file name.
        file_size_bytes: Size of the staged file.
        uploaded_at: Creation time (UTC).
        expires_at: uploaded_at plus the session TTL.
        metadata: Free-form annotations, e.g. preview_completed.
        cached_parse: In-memory only, never written to the session store.
    """

    session_id: str
    owner_id: str
    file_path: Path
    file_name: str
    file_format: FileFormat
    file_size_bytes: int
    uploaded_at: datetime
    expires_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    cached_parse: Optional[ParseCache] = None

    # Fields an update may never overwrite
    IMMUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "session_id",
        "owner_id",
        "file_path",
        "file_format",
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict:
        """Convert session to a JSON-safe dictionary for the session store."""
        return {
            "session_id": self.session_id,
            "owner_id": self.owner_id,
            "file_path": str(self.file_path),
            "file_name": self.file_name,
            "file_format": self.file_format.value,
            "file_size_bytes": self.file_size_bytes,
            "uploaded_at": self.uploaded_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImportSession":
        """Rebuild a session from its stored dictionary.

        Raises:
            KeyError, ValueError: If the stored data is incomplete or malformed.
        """
        return cls(
            session_id=data["session_id"],
            owner_id=data["owner_id"],
            file_path=Path(data["file_path"]),
            file_name=data["file_name"],
            file_format=FileFormat(data["file_format"]),
            file_size_bytes=int(data["file_size_bytes"]),
            uploaded_at=datetime.fromisoformat(data["uploaded_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            metadata=dict(data.get("metadata") or {}),
        )
