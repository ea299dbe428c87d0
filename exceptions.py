"""Fillbook exception hierarchy.

Structural and session errors propagate to the caller. Row-level errors
(ParseError, PersistenceError) are caught by the import engine and recorded in
the returned summary.
"""


class FillbookError(Exception):
    """Base exception for all Fillbook errors."""


class UnsupportedFormatError(FillbookError):
    """Uploaded file has an extension we cannot import."""

    def __init__(self, file_name: str, extension: str) -> None:
        self.file_name = file_name
        self.extension = extension
        super().__init__(
            f"Unsupported file format '{extension or '(none)'}' for {file_name}"
        )


class UploadTooLargeError(FillbookError):
    """Upload exceeds the configured size cap."""

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        super().__init__(f"Upload exceeds maximum size of {max_bytes} bytes")


class ParseError(FillbookError):
    """A row (or the whole file) could not be parsed."""


class MissingColumnError(ParseError):
    """Required columns are missing from the header row."""

    def __init__(self, missing: list) -> None:
        self.missing = missing
        super().__init__(f"Missing required column(s): {', '.join(missing)}")


class PersistenceError(FillbookError):
    """Saving a record to the trade store failed."""


class SessionError(FillbookError):
    """Base class for import session lifecycle errors."""

    def __init__(self, session_id: str, message: str) -> None:
        self.session_id = session_id
        super().__init__(message)


class SessionNotFoundError(SessionError):
    """Session does not exist (or no longer exists)."""

    def __init__(self, session_id: str, message: str = "") -> None:
        super().__init__(session_id, message or f"Import session {session_id} not found")


class SessionExpiredError(SessionNotFoundError):
    """Session existed but is past its expiry time."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Import session {session_id} has expired")


class OwnershipError(SessionError):
    """Session belongs to a different owner."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            session_id, f"Import session {session_id} belongs to another user"
        )


class SessionAlreadyExecutedError(SessionError):
    """A single-use session was executed before."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            session_id, f"Import session {session_id} has already been executed"
        )
