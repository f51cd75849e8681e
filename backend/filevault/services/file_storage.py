"""Blob store: raw file bytes under one fixed root directory.

Knows nothing about metadata. Every path is relative to the root; anything
that normalizes to a location outside the root is rejected.
"""
import logging
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from filevault.errors import BlobIOError, InvalidInputError
from filevault.services.records import normalize_extension

logger = logging.getLogger(__name__)


class BlobStore:
    """Reads, writes and deletes blobs on the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, stored_path: str) -> Path:
        """Map a stored path to an absolute path inside the root.

        A leading "/" is tolerated (older records were stored as "/uploads/x").
        """
        cleaned = (stored_path or "").strip().lstrip("/\\")
        if not cleaned:
            raise InvalidInputError("Blob path must not be empty")
        candidate = (self.root / cleaned).resolve()
        if candidate == self.root or not candidate.is_relative_to(self.root):
            raise InvalidInputError(f"Blob path escapes the storage root: {stored_path!r}")
        return candidate

    def new_path(self, extension: str = "") -> str:
        """Generate a fresh, collision-free relative path for a new blob."""
        ext = normalize_extension(extension)
        name = uuid.uuid4().hex
        return f"{name}.{ext}" if ext else name

    async def write(self, stored_path: str, data: bytes) -> None:
        path = self.resolve(stored_path)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            await self._discard_partial(path)
            raise BlobIOError(f"Failed to write blob {stored_path}: {e}") from e

    async def read(self, stored_path: str) -> bytes:
        path = self.resolve(stored_path)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise BlobIOError(f"Failed to read blob {stored_path}: {e}") from e

    async def delete(self, stored_path: str) -> None:
        """Delete a blob. A blob that is already gone is not an error."""
        path = self.resolve(stored_path)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("Blob %s already absent", stored_path)
        except OSError as e:
            raise BlobIOError(f"Failed to delete blob {stored_path}: {e}") from e

    async def _discard_partial(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial blob {path}: {e}")
