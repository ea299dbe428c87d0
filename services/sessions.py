"""Import session registry.

Maps session IDs to ImportSession records. Records live in memory and are
mirrored to one JSON file per session in the sessions directory so a restarted
process picks up sessions that are still active.
"""

import dataclasses
import json
import os
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from exceptions import OwnershipError, SessionExpiredError, SessionNotFoundError
from logger import get_logger
from models.import_session import ImportSession, detect_file_format
from services.file_store import FileStore
from services.locks import KeyedLockManager

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """Owns all import session state for one process.

    Map mutations happen under a single registry lock. Deleting a session also
    takes that session's lock from the keyed lock manager, so a session is never
    removed while a preview or execute holds it.

    Args:
        sessions_dir: Directory for the durable session records.
        file_store: Store that owns the sessions' staged files.
        ttl: Session lifetime.
        clock: Returns the current aware datetime, injectable for tests.
        locks: Per-session lock manager, shared with the callers that
            serialize preview and execute.
    """

    def __init__(
        self,
        sessions_dir: Path,
        file_store: FileStore,
        ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[KeyedLockManager] = None,
    ):
        self.sessions_dir = Path(sessions_dir)
        self.file_store = file_store
        self.ttl = ttl
        self.clock = clock or utcnow
        self.locks = locks or KeyedLockManager()
        self._sessions: Dict[str, ImportSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Durable store
    # ------------------------------------------------------------------

    def _record_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def _save_record(self, session: ImportSession) -> None:
        """Write a session record atomically (temp file, then rename)."""
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        path = self._record_path(session.session_id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(session.to_dict(), f, indent=2)
        os.replace(tmp_path, path)

    def _delete_record(self, session_id: str) -> None:
        self._record_path(session_id).unlink(missing_ok=True)

    def load(self) -> int:
        """Load durable session records into memory.

        Expired sessions are deleted together with their files. Records whose
        staged file is gone, and records that cannot be read, are removed.

        Returns:
            Number of active sessions loaded.
        """
        if not self.sessions_dir.exists():
            logger.info("No existing import sessions found on disk")
            return 0

        for tmp_path in self.sessions_dir.glob("*.json.tmp"):
            tmp_path.unlink(missing_ok=True)

        now = self.clock()
        loaded = 0
        for path in sorted(self.sessions_dir.glob("*.json")):
            try:
                with open(path, "r") as f:
                    session = ImportSession.from_dict(json.load(f))
            except (OSError, KeyError, ValueError) as e:
                logger.warning(f"Removing unreadable session record {path.name}: {e}")
                path.unlink(missing_ok=True)
                continue

            if session.is_expired(now):
                logger.info(f"Dropping expired session {session.session_id}")
                self.file_store.delete(session.file_path)
                path.unlink(missing_ok=True)
                continue

            if not self.file_store.exists(session.file_path):
                logger.warning(
                    f"Dropping session {session.session_id}: staged file is missing"
                )
                path.unlink(missing_ok=True)
                continue

            with self._lock:
                self._sessions[session.session_id] = session
            loaded += 1

        logger.info(f"Loaded {loaded} active import session(s) from disk")
        return loaded

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def create(
        self, owner_id: str, file_path: Path, file_name: str, file_size_bytes: int
    ) -> str:
        """Register a staged file as a new import session.

        Args:
            owner_id: Identity of the uploading user.
            file_path: Staged file, owned by the session from now on.
            file_name: Original file name, decides the file format.
            file_size_bytes: Size of the staged file.

        Returns:
            The new session ID.

        Raises:
            UnsupportedFormatError: If the file name has an unsupported extension.
            OSError: If the session record cannot be written.
        """
        file_format = detect_file_format(file_name)
        uploaded_at = self.clock()
        session = ImportSession(
            session_id=secrets.token_hex(16),
            owner_id=owner_id,
            file_path=Path(file_path),
            file_name=file_name,
            file_format=file_format,
            file_size_bytes=file_size_bytes,
            uploaded_at=uploaded_at,
            expires_at=uploaded_at + self.ttl,
        )

        # The ID is new, so no other caller can touch this record yet
        self._save_record(session)
        with self._lock:
            self._sessions[session.session_id] = session

        logger.info(
            f"Created import session {session.session_id} for {owner_id} "
            f"({file_name}, {file_format.value}, {file_size_bytes} bytes)"
        )
        return session.session_id

    def _snapshot(self, session: ImportSession) -> ImportSession:
        return dataclasses.replace(session, metadata=dict(session.metadata))

    def get(self, session_id: str, owner_id: str) -> ImportSession:
        """Get a session owned by owner_id.

        Ownership is checked before expiry, so another user's session is
        reported as not owned whether or not it has expired. An expired session
        is deleted as a side effect unless another caller is using it.

        Returns:
            A copy of the session record.

        Raises:
            SessionNotFoundError: If there is no such session.
            OwnershipError: If the session belongs to another owner.
            SessionExpiredError: If the session is past its expiry time.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.owner_id != owner_id:
                logger.warning(
                    f"Owner {owner_id} denied access to import session {session_id}"
                )
                raise OwnershipError(session_id)
            expired = session.is_expired(self.clock())
            snapshot = None if expired else self._snapshot(session)

        if expired:
            self._delete_if_idle(session_id)
            raise SessionExpiredError(session_id)
        return snapshot

    def update(self, session_id: str, owner_id: str, /, **fields) -> bool:
        """Merge fields into a session.

        metadata is merged key by key; other fields are replaced. Immutable
        fields (session_id, owner_id, file_path, file_format) are never
        overwritten; passing them logs a warning and drops them.

        The record is written under the session's own lock, so a slow disk
        only holds up callers of this session.

        Returns:
            True if the session was updated, False if it is absent, expired or
            owned by someone else.

        Raises:
            ValueError: For unknown field names or an expiry before upload time.
        """
        known = {f.name for f in dataclasses.fields(ImportSession)}
        unknown = set(fields) - known
        if unknown:
            raise ValueError(f"Unknown session field(s): {sorted(unknown)}")

        blocked = set(fields) & set(ImportSession.IMMUTABLE_FIELDS)
        if blocked:
            logger.warning(
                f"Ignoring update of immutable session field(s) {sorted(blocked)}"
            )
        changes = {k: v for k, v in fields.items() if k not in blocked}

        with self.lock(session_id):
            with self._lock:
                session = self._sessions.get(session_id)
                if session is None or session.owner_id != owner_id:
                    return False
                if session.is_expired(self.clock()):
                    return False

            if "metadata" in changes:
                changes["metadata"] = {**session.metadata, **(changes["metadata"] or {})}
            updated = dataclasses.replace(session, **changes)
            if updated.expires_at < updated.uploaded_at:
                raise ValueError("expires_at cannot be earlier than uploaded_at")

            if set(changes) != {"cached_parse"}:
                self._save_record(updated)
            with self._lock:
                self._sessions[session_id] = updated
        return True

    def _forget_lock_if_gone(self, session_id: str) -> None:
        with self._lock:
            if session_id not in self._sessions:
                self.locks.discard(session_id)

    @contextmanager
    def lock(self, session_id: str):
        """Context manager holding the session's lock, waiting if needed.

        The lock is dropped on exit when no such session exists, so lookups
        of unknown IDs leave nothing behind.
        """
        try:
            with self.locks.hold(session_id):
                yield
        finally:
            self._forget_lock_if_gone(session_id)

    @contextmanager
    def try_lock(self, session_id: str):
        """Context manager trying the session's lock; yields whether it was taken."""
        try:
            with self.locks.try_hold(session_id) as acquired:
                yield acquired
        finally:
            self._forget_lock_if_gone(session_id)

    def delete(self, session_id: str) -> bool:
        """Delete a session, its record and its staged file.

        Waits for any caller holding the session's lock. A staged file that is
        already gone is not an error.

        Returns:
            True if the session existed.
        """
        with self.lock(session_id):
            return self._delete_locked(session_id)

    def _delete_if_idle(self, session_id: str, only_if_expired: bool = True) -> bool:
        with self.try_lock(session_id) as acquired:
            if not acquired:
                logger.debug(f"Session {session_id} is in use, not deleting now")
                return False
            return self._delete_locked(session_id, only_if_expired)

    def _delete_locked(self, session_id: str, only_if_expired: bool = False) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if only_if_expired and not session.is_expired(self.clock()):
                return False
            del self._sessions[session_id]

        self.file_store.delete(session.file_path)
        self._delete_record(session_id)
        self.locks.discard(session_id)
        logger.info(f"Deleted import session {session_id}")
        return True

    def delete_expired(self) -> int:
        """Delete every expired session that no one is using.

        Returns:
            Number of sessions deleted.
        """
        deleted = 0
        for session_id in self.expired_ids():
            if self._delete_if_idle(session_id):
                deleted += 1
        return deleted

    def purge_all(self) -> int:
        """Delete every session, best effort. Used on shutdown.

        Returns:
            Number of sessions deleted.
        """
        deleted = 0
        for session_id in self.all_ids():
            try:
                if self.delete(session_id):
                    deleted += 1
            except OSError as e:
                logger.warning(f"Failed to purge import session {session_id}: {e}")
        return deleted

    def expired_ids(self) -> List[str]:
        now = self.clock()
        with self._lock:
            return [
                sid for sid, session in self._sessions.items() if session.is_expired(now)
            ]

    def all_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
