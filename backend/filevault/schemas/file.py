"""File request/response schemas."""
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from filevault.schemas.base import CamelModel
from filevault.services.bulk import BulkAction
from filevault.services.json_merge import MergeStrategy
from filevault.services.records import AggregateStats, Backend, BackendStats, FileRecord, RecordRef


class FileResponse(CamelModel):
    id: str
    backend: Backend
    original_name: str
    stored_path: str
    extension: str
    category: str
    tags: list[str]
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileResponse":
        return cls(
            id=record.id,
            backend=record.backend,
            original_name=record.original_name,
            stored_path=record.stored_path,
            extension=record.extension,
            category=record.category,
            tags=list(record.tags),
            size_bytes=record.size_bytes,
            mime_type=record.mime_type,
            created_at=record.created_at,
        )


class FileListResponse(CamelModel):
    files: list[FileResponse]


class RenameRequest(CamelModel):
    backend: Backend
    new_name: str


class FileRef(CamelModel):
    # the web client sends relational ids as numbers
    id: int | str
    backend: Backend

    def to_ref(self) -> RecordRef:
        return RecordRef(str(self.id), self.backend)


class BulkRequest(CamelModel):
    action: str
    files: list[FileRef] = Field(default_factory=list)


class ArchiveRequest(CamelModel):
    files: list[FileRef] = Field(default_factory=list)


class BulkResultResponse(CamelModel):
    succeeded: int
    failed: int
    errors: list[str]


class BulkResponse(CamelModel):
    message: str
    action: BulkAction
    results: BulkResultResponse


class MergeRequest(CamelModel):
    file1_id: int | str
    file1_backend: Backend
    file2_id: int | str
    file2_backend: Backend
    strategy: MergeStrategy = MergeStrategy.SHALLOW

    def refs(self) -> tuple[RecordRef, RecordRef]:
        return (
            RecordRef(str(self.file1_id), self.file1_backend),
            RecordRef(str(self.file2_id), self.file2_backend),
        )


class MergePreviewResponse(CamelModel):
    strategy: MergeStrategy
    merged: Any


class BackendStatsResponse(CamelModel):
    total: int
    by_category: dict[str, int]
    by_extension: dict[str, int]

    @classmethod
    def from_stats(cls, stats: BackendStats) -> "BackendStatsResponse":
        return cls(total=stats.total, by_category=stats.by_category, by_extension=stats.by_extension)


class StatsResponse(CamelModel):
    relational: BackendStatsResponse
    document: BackendStatsResponse
    combined: BackendStatsResponse

    @classmethod
    def from_stats(cls, stats: AggregateStats) -> "StatsResponse":
        return cls(
            relational=BackendStatsResponse.from_stats(stats.relational),
            document=BackendStatsResponse.from_stats(stats.document),
            combined=BackendStatsResponse.from_stats(stats.combined),
        )
