"""File store for staged uploads."""

import re
import secrets
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional

from exceptions import UploadTooLargeError
from logger import get_logger

logger = get_logger(__name__)

_CHUNK_SIZE = 64 * 1024


def sanitize_name(file_name: str) -> str:
    """Reduce a client file name stem to [a-z0-9_] for use on disk."""
    stem = Path(file_name).stem
    return re.sub(r"[^a-z0-9]", "_", stem.lower())[:64] or "upload"


class FileStore:
    """Writes uploaded byte streams to the upload directory and removes them.

    Owns no business logic: callers decide what a staged file means.

    Args:
        upload_dir: Directory staged files are written to.
        max_bytes: Size cap enforced while copying, None for no cap.
    """

    def __init__(self, upload_dir: Path, max_bytes: Optional[int] = None):
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes

    def write(self, source: BinaryIO, file_name: str) -> Path:
        """Copy a byte stream into a new file in the upload directory.

        The staged name is {sanitized_stem}-{timestamp}-{random}{extension} so
        two uploads of the same file never collide.

        Args:
            source: Readable binary stream.
            file_name: Original file name, used for the stem and extension.

        Returns:
            Path of the staged file.

        Raises:
            UploadTooLargeError: If the stream exceeds max_bytes. Nothing is
                left on disk in that case.
        """
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        extension = Path(file_name).suffix.lower()
        staged_name = (
            f"{sanitize_name(file_name)}-{timestamp}-{secrets.token_hex(6)}{extension}"
        )
        path = self.upload_dir / staged_name

        written = 0
        try:
            with open(path, "wb") as f_out:
                while True:
                    chunk = source.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if self.max_bytes is not None and written > self.max_bytes:
                        raise UploadTooLargeError(self.max_bytes)
                    f_out.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"Staged upload {file_name} as {path} ({written} bytes)")
        return path

    def read(self, path: Path) -> bytes:
        """Read a staged file's bytes."""
        with open(path, "rb") as f:
            return f.read()

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def delete(self, path: Path) -> bool:
        """Delete a staged file.

        Returns:
            True if a file was removed, False if it was already gone.
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            logger.debug(f"Staged file already gone: {path}")
            return False
        logger.info(f"Deleted staged file {path}")
        return True

