"""Unified file registry over the relational and document metadata stores.

Every mutation is routed by the record's backend tag. Reads that span both
backends are issued concurrently and merged here, because neither store can
order the other's records.
"""
import asyncio
import logging
from dataclasses import replace

from filevault.errors import BlobIOError, InvalidInputError
from filevault.services.file_storage import BlobStore
from filevault.services.records import (
    AggregateStats,
    Backend,
    BackendStats,
    FileFilter,
    FileRecord,
    MetadataStore,
    NewFileRecord,
    validate_file_name,
)

logger = logging.getLogger(__name__)


def _newest_first(record: FileRecord):
    return (record.created_at, record.backend.value, record.id)


class FileRegistry:
    """One metadata model over two stores plus the blob area they point into."""

    def __init__(
        self,
        relational: MetadataStore,
        document: MetadataStore,
        blobs: BlobStore,
        default_category: str = "uncategorized",
    ):
        self._stores = {Backend.RELATIONAL: relational, Backend.DOCUMENT: document}
        self.blobs = blobs
        self.default_category = default_category

    def store_for(self, backend: Backend) -> MetadataStore:
        return self._stores[Backend(backend)]

    async def list(self, file_filter: FileFilter | None = None) -> list[FileRecord]:
        """Records from both backends matching the filter, newest createdAt first."""
        file_filter = file_filter or FileFilter()
        relational, document = await asyncio.gather(
            self._stores[Backend.RELATIONAL].list(file_filter),
            self._stores[Backend.DOCUMENT].list(file_filter),
        )
        return sorted([*relational, *document], key=_newest_first, reverse=True)

    async def get(self, record_id: str, backend: Backend) -> FileRecord:
        return await self.store_for(backend).get(record_id)

    async def create(self, new: NewFileRecord, backend: Backend) -> FileRecord:
        """Insert metadata for a blob that has already been written at new.stored_path."""
        name = validate_file_name(new.original_name)
        if not (new.stored_path or "").strip():
            raise InvalidInputError("stored_path is required")
        self.blobs.resolve(new.stored_path)
        new = replace(new, original_name=name, category=(new.category or "").strip() or self.default_category)
        record = await self.store_for(backend).insert(new)
        logger.info(f"Created file record {record.ref} ({record.original_name})")
        return record

    async def rename(self, record_id: str, backend: Backend, new_name: str) -> FileRecord:
        """Change only original_name; stored_path and the blob are untouched."""
        new_name = validate_file_name(new_name)
        return await self.store_for(backend).rename(record_id, new_name)

    async def delete(self, record_id: str, backend: Backend) -> FileRecord:
        """Delete metadata first, then try to remove the blob.

        The metadata delete is authoritative: a blob that cannot be removed is
        logged and left behind, the call still succeeds.
        """
        record = await self.store_for(backend).delete(record_id)
        try:
            await self.blobs.delete(record.stored_path)
        except (BlobIOError, InvalidInputError) as e:
            logger.warning(f"Deleted record {record.ref} but could not remove blob {record.stored_path!r}: {e}")
        return record

    async def read_content(self, record: FileRecord) -> bytes:
        return await self.blobs.read(record.stored_path)

    async def aggregate_stats(self) -> AggregateStats:
        relational, document = await asyncio.gather(
            self._stores[Backend.RELATIONAL].aggregate(),
            self._stores[Backend.DOCUMENT].aggregate(),
        )
        return AggregateStats(
            relational=relational,
            document=document,
            combined=BackendStats.combine(relational, document),
        )
