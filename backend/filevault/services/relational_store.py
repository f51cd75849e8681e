"""Relational metadata store - one row per file in the `files` table."""
import logging

from sqlalchemy import select, func, desc, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from filevault.errors import BackendUnavailableError, NotFoundError
from filevault.models.base import utcnow
from filevault.models.file_record import FileRow
from filevault.services.records import (
    Backend,
    BackendStats,
    FileFilter,
    FileRecord,
    NewFileRecord,
    as_utc,
    extension_of,
    normalize_extension,
    normalize_tags,
)

logger = logging.getLogger(__name__)

MAX_ROW_ID = 2**31 - 1


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(row: FileRow) -> FileRecord:
    """Convert SQLAlchemy row to the canonical record."""
    return FileRecord(
        id=str(row.id),
        backend=Backend.RELATIONAL,
        original_name=row.original_name,
        stored_path=row.stored_path,
        extension=row.extension or "",
        category=row.category or "",
        tags=normalize_tags(row.tags or ()),
        size_bytes=row.size_bytes,
        created_at=as_utc(row.created_at),
        mime_type=row.mime_type,
    )


def _parse_id(record_id: str) -> int:
    try:
        row_id = int(str(record_id))
    except ValueError:
        raise NotFoundError(f"File {record_id} not found in relational store")
    # files.id is a 32-bit INTEGER; anything outside it cannot exist
    if not 1 <= row_id <= MAX_ROW_ID:
        raise NotFoundError(f"File {record_id} not found in relational store")
    return row_id


class RelationalMetadataStore:
    """File metadata in a SQL database, reached through an async SQLAlchemy engine."""

    backend = Backend.RELATIONAL

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        # Postgres evaluates "contains all tags" with JSONB @>; other dialects post-filter
        self._native_tag_filter = engine.dialect.name == "postgresql"

    def _build_query(self, file_filter: FileFilter):
        query = select(FileRow).order_by(desc(FileRow.created_at))
        if file_filter.query:
            query = query.where(
                FileRow.original_name.ilike(f"%{_escape_like(file_filter.query)}%", escape="\\")
            )
        if file_filter.category is not None:
            query = query.where(FileRow.category == file_filter.category)
        if file_filter.extension is not None:
            query = query.where(FileRow.extension == file_filter.extension)
        if file_filter.tags and self._native_tag_filter:
            query = query.where(type_coerce(FileRow.tags, JSONB).contains(list(file_filter.tags)))
        return query

    async def list(self, file_filter: FileFilter) -> list[FileRecord]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(self._build_query(file_filter))
                records = [_to_record(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store query failed: {e}") from e
        if file_filter.tags and not self._native_tag_filter:
            wanted = set(file_filter.tags)
            records = [r for r in records if wanted.issubset(r.tags)]
        return records

    async def get(self, record_id: str) -> FileRecord:
        row_id = _parse_id(record_id)
        try:
            async with self.session_factory() as db:
                row = await db.get(FileRow, row_id)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store lookup failed: {e}") from e
        if not row:
            raise NotFoundError(f"File {record_id} not found in relational store")
        return _to_record(row)

    async def insert(self, new: NewFileRecord) -> FileRecord:
        row = FileRow(
            original_name=new.original_name,
            stored_path=new.stored_path,
            extension=normalize_extension(new.extension) if new.extension is not None else extension_of(new.original_name),
            category=new.category,
            tags=list(normalize_tags(new.tags)),
            size_bytes=new.size_bytes,
            mime_type=new.mime_type,
            created_at=new.created_at or utcnow(),
        )
        try:
            async with self.session_factory() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store insert failed: {e}") from e
        return _to_record(row)

    async def rename(self, record_id: str, new_name: str) -> FileRecord:
        row_id = _parse_id(record_id)
        try:
            async with self.session_factory() as db:
                row = await db.get(FileRow, row_id)
                if not row:
                    raise NotFoundError(f"File {record_id} not found in relational store")
                row.original_name = new_name
                await db.commit()
                await db.refresh(row)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store update failed: {e}") from e
        return _to_record(row)

    async def delete(self, record_id: str) -> FileRecord:
        """Delete the row and return what it held (the caller needs stored_path)."""
        row_id = _parse_id(record_id)
        try:
            async with self.session_factory() as db:
                row = await db.get(FileRow, row_id)
                if not row:
                    raise NotFoundError(f"File {record_id} not found in relational store")
                record = _to_record(row)
                await db.delete(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store delete failed: {e}") from e
        return record

    async def aggregate(self) -> BackendStats:
        try:
            async with self.session_factory() as db:
                total = (await db.execute(select(func.count(FileRow.id)))).scalar() or 0
                by_category = await db.execute(
                    select(FileRow.category, func.count()).group_by(FileRow.category)
                )
                by_extension = await db.execute(
                    select(FileRow.extension, func.count()).group_by(FileRow.extension)
                )
                return BackendStats(
                    total=total,
                    by_category={r[0] or "": r[1] for r in by_category.all()},
                    by_extension={r[0] or "": r[1] for r in by_extension.all()},
                )
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Relational store aggregate failed: {e}") from e
