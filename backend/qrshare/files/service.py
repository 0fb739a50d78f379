"""Blob storage service for qrshare.

Stores named byte payloads as flat files in a single upload directory:
    uploads/{name}

The namespace is shared by every session. A session only remembers which
names it produced so they can be removed on teardown. Writing an existing
name overwrites it (last writer wins).
"""
import logging
from pathlib import Path
from typing import List, Optional

from qrshare.errors import BlobIOError, InvalidRequest

logger = logging.getLogger(__name__)


class BlobStore:
    """Service for storing, listing and deleting uploaded files."""

    _upload_dir: str = "uploads"

    def __init__(self, upload_dir: Optional[str] = None):
        """Initialize the blob store and create its directory."""
        if upload_dir:
            self._upload_dir = upload_dir
        self._ensure_upload_dir()

    @property
    def upload_dir(self) -> Path:
        return Path(self._upload_dir)

    def _ensure_upload_dir(self) -> None:
        """Ensure the upload directory exists."""
        Path(self._upload_dir).mkdir(parents=True, exist_ok=True)

    def _path_for(self, name: str) -> Path:
        """Map a file name to its path, rejecting anything outside the directory."""
        if not name or name in (".", "..") or Path(name).name != name or "\\" in name:
            raise InvalidRequest(f"Invalid file name: {name!r}")
        return Path(self._upload_dir) / name

    def put(self, name: str, content: bytes) -> None:
        """Write *content* under *name*, replacing any existing blob.

        Raises:
            InvalidRequest: If the name is empty or contains a path component.
            BlobIOError: If the write fails.
        """
        path = self._path_for(name)
        try:
            self._ensure_upload_dir()
            path.write_bytes(content)
        except OSError as e:
            raise BlobIOError(f"Failed to write {name}: {e}") from e
        logger.info(f"Saved file: {path} ({len(content)} bytes)")

    def get(self, name: str) -> Optional[bytes]:
        """Return the blob content, or None if no such file exists.

        Raises:
            BlobIOError: If the file exists but cannot be read.
        """
        try:
            path = self._path_for(name)
        except InvalidRequest:
            return None
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise BlobIOError(f"Failed to read {name}: {e}") from e

    def list(self) -> List[str]:
        """List stored file names in alphabetical order."""
        directory = Path(self._upload_dir)
        if not directory.exists():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file())

    def delete(self, name: str) -> bool:
        """Delete a blob.

        Returns:
            True if a file was removed, False if it did not exist.

        Raises:
            BlobIOError: If the file exists but cannot be removed.
        """
        try:
            path = self._path_for(name)
        except InvalidRequest:
            return False
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise BlobIOError(f"Failed to delete {name}: {e}") from e
        logger.info(f"Deleted file: {path}")
        return True
