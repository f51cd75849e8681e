"""Shared fixtures: in-memory metadata stores, a tmp blob area and the engines on top."""
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from filevault.errors import BackendUnavailableError, NotFoundError
from filevault.services.bulk import BulkOperationEngine
from filevault.services.file_storage import BlobStore
from filevault.services.merge_engine import MergeEngine
from filevault.services.records import (
    Backend,
    BackendStats,
    FileRecord,
    NewFileRecord,
    extension_of,
    normalize_extension,
    normalize_tags,
)
from filevault.services.registry import FileRegistry

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeMetadataStore:
    """Dict-backed store. Ids are "1", "2", ... in every instance, so backends share ids."""

    def __init__(self, backend: Backend):
        self.backend = backend
        self.records: dict[str, FileRecord] = {}
        self.unavailable_ids: set[str] = set()
        self.down = False
        self._next_id = 1

    def _check(self, record_id=None):
        if self.down or (record_id is not None and record_id in self.unavailable_ids):
            raise BackendUnavailableError(f"{self.backend.value} store unreachable")

    async def list(self, file_filter):
        self._check()
        return [r for r in self.records.values() if file_filter.matches(r)]

    async def get(self, record_id):
        self._check(record_id)
        if record_id not in self.records:
            raise NotFoundError(f"File {record_id} not found")
        return self.records[record_id]

    async def insert(self, new: NewFileRecord):
        self._check()
        record_id = str(self._next_id)
        self._next_id += 1
        record = FileRecord(
            id=record_id,
            backend=self.backend,
            original_name=new.original_name,
            stored_path=new.stored_path,
            extension=normalize_extension(new.extension) if new.extension is not None else extension_of(new.original_name),
            category=new.category,
            tags=normalize_tags(new.tags),
            size_bytes=new.size_bytes,
            created_at=new.created_at or datetime.now(timezone.utc),
            mime_type=new.mime_type,
        )
        self.records[record_id] = record
        return record

    async def rename(self, record_id, new_name):
        record = await self.get(record_id)
        self.records[record_id] = replace(record, original_name=new_name)
        return self.records[record_id]

    async def delete(self, record_id):
        record = await self.get(record_id)
        del self.records[record_id]
        return record

    async def aggregate(self):
        self._check()
        stats = BackendStats(total=len(self.records))
        for r in self.records.values():
            stats.by_category[r.category] = stats.by_category.get(r.category, 0) + 1
            stats.by_extension[r.extension] = stats.by_extension.get(r.extension, 0) + 1
        return stats


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def relational_store():
    return FakeMetadataStore(Backend.RELATIONAL)


@pytest.fixture
def document_store():
    return FakeMetadataStore(Backend.DOCUMENT)


@pytest.fixture
def registry(relational_store, document_store, blobs):
    return FileRegistry(relational_store, document_store, blobs, default_category="uncategorized")


@pytest.fixture
def merge_engine(registry):
    return MergeEngine(registry, Backend.DOCUMENT)


@pytest.fixture
def bulk_engine(registry):
    return BulkOperationEngine(registry, concurrency=3)


@pytest.fixture
def add_file(registry):
    """Write a blob and register it. content may be bytes, str, or a JSON-able value."""

    async def _add(
        name,
        backend=Backend.RELATIONAL,
        content=b"",
        category="docs",
        tags=(),
        minutes=0,
    ):
        if isinstance(content, str):
            data = content.encode("utf-8")
        elif isinstance(content, bytes):
            data = content
        else:
            data = json.dumps(content).encode("utf-8")
        stored_path = registry.blobs.new_path(extension_of(name))
        await registry.blobs.write(stored_path, data)
        return await registry.create(
            NewFileRecord(
                original_name=name,
                stored_path=stored_path,
                category=category,
                tags=tags,
                size_bytes=len(data),
                created_at=BASE_TIME + timedelta(minutes=minutes),
            ),
            backend,
        )

    return _add
