"""Session-facing import operations.

Ties the file store, the session registry and the import engine together:
upload, preview, execute, status and delete, each checked against the caller's
owner identity and serialized per session.
"""

from typing import BinaryIO, Optional

from config import EXECUTE_POLICIES
from exceptions import SessionAlreadyExecutedError, UploadTooLargeError
from logger import get_logger
from models.import_session import detect_file_format
from models.import_summary import ImportOptions, ImportSummary

logger = get_logger(__name__)

POLICY_SINGLE_USE = "single_use"
POLICY_REPEATABLE = "repeatable"


class ImportSessionService:
    """Import session operations for one owner identity at a time.

    Args:
        registry: SessionRegistry holding the sessions.
        engine: ImportEngine running preview and execute.
        file_store: FileStore staging uploads.
        execute_policy: "single_use" rejects a second execute and deletes the
            session after the first; "repeatable" keeps the session until it
            expires.
    """

    def __init__(
        self, registry, engine, file_store, execute_policy: str = POLICY_SINGLE_USE
    ):
        if execute_policy not in EXECUTE_POLICIES:
            raise ValueError(f"Unknown execute policy: {execute_policy}")
        self.registry = registry
        self.engine = engine
        self.file_store = file_store
        self.execute_policy = execute_policy

    def create_session(
        self,
        source: BinaryIO,
        file_name: str,
        owner_id: str,
        size_hint: Optional[int] = None,
    ) -> str:
        """Stage an upload and open an import session for it.

        Args:
            source: Readable binary stream of the uploaded file.
            file_name: Original file name; its extension decides the format.
            owner_id: Identity of the uploading user.
            size_hint: Declared upload size, if the caller knows it.

        Returns:
            The new session ID.

        Raises:
            UnsupportedFormatError: If the extension is not accepted. Nothing
                is staged.
            UploadTooLargeError: If the upload exceeds the size cap. Nothing
                is staged.
        """
        detect_file_format(file_name)

        max_bytes = self.file_store.max_bytes
        if max_bytes is not None and size_hint is not None and size_hint > max_bytes:
            raise UploadTooLargeError(max_bytes)

        path = self.file_store.write(source, file_name)
        try:
            size = path.stat().st_size
            return self.registry.create(owner_id, path, file_name, size)
        except BaseException:
            self.file_store.delete(path)
            raise

    def preview(
        self, session_id: str, owner_id: str, options: Optional[ImportOptions] = None
    ) -> ImportSummary:
        """Dry-run the session's import.

        Records preview_completed and the preview counts in the session's
        metadata and caches the parse for later calls.

        Raises:
            SessionNotFoundError: If the session does not exist or expired.
            OwnershipError: If the session belongs to another owner.
            MissingColumnError: If the file lacks a required column.
        """
        options = options or ImportOptions()
        with self.registry.lock(session_id):
            session = self.registry.get(session_id, owner_id)
            rows, cache = self.engine.parse(session, options)
            summary = self.engine.preview(session, rows, options)

            fields = {
                "metadata": {
                    "preview_completed": True,
                    "last_preview": summary.counts(),
                }
            }
            if cache is not None:
                fields["cached_parse"] = cache
            self.registry.update(session_id, owner_id, **fields)
            return summary

    def execute(
        self, session_id: str, owner_id: str, options: Optional[ImportOptions] = None
    ) -> ImportSummary:
        """Commit the session's importable rows.

        Under the single_use policy the session is marked executed before any
        row is saved and deleted once the commit pass is over, whatever its
        outcome.

        Raises:
            SessionNotFoundError: If the session does not exist or expired.
            OwnershipError: If the session belongs to another owner.
            SessionAlreadyExecutedError: If a single_use session was already
                executed.
            MissingColumnError: If the file lacks a required column.
            PersistenceError: If the batch could not be written at all.
        """
        options = options or ImportOptions()
        with self.registry.lock(session_id):
            session = self.registry.get(session_id, owner_id)
            single_use = self.execute_policy == POLICY_SINGLE_USE

            if single_use and session.metadata.get("executed_at"):
                raise SessionAlreadyExecutedError(session_id)

            rows, cache = self.engine.parse(session, options)
            if single_use:
                self.registry.update(
                    session_id,
                    owner_id,
                    metadata={"executed_at": self.registry.clock().isoformat()},
                )

            try:
                summary = self.engine.execute(session, rows, options)
            finally:
                if single_use:
                    self.registry.delete(session_id)

            if not single_use:
                fields = {"metadata": {"last_execute": summary.counts()}}
                if cache is not None:
                    fields["cached_parse"] = cache
                self.registry.update(session_id, owner_id, **fields)
            return summary

    def get_status(self, session_id: str, owner_id: str) -> dict:
        """Describe a session for its owner.

        Returns:
            Dictionary with the session's file, timestamps and metadata.
        """
        session = self.registry.get(session_id, owner_id)
        return {
            "session_id": session.session_id,
            "file_name": session.file_name,
            "file_format": session.file_format.value,
            "file_size_bytes": session.file_size_bytes,
            "uploaded_at": session.uploaded_at.isoformat(),
            "expires_at": session.expires_at.isoformat(),
            "preview_completed": bool(session.metadata.get("preview_completed")),
            "metadata": session.metadata,
        }

    def delete_session(self, session_id: str, owner_id: str) -> bool:
        """Delete a session on its owner's request.

        Raises:
            SessionNotFoundError: If the session does not exist.
            OwnershipError: If the session belongs to another owner.
        """
        with self.registry.lock(session_id):
            self.registry.get(session_id, owner_id)
            return self.registry.delete(session_id)
