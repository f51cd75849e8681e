"""Canonical, backend-agnostic file metadata.

Both stores translate their native shapes into these dataclasses so the
registry and the engines never look at a SQL row or a Mongo document.
A record is identified by (id, backend); ids are only unique per backend.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, Protocol, Sequence

from filevault.errors import InvalidInputError


class Backend(str, Enum):
    RELATIONAL = "relational"
    DOCUMENT = "document"

    @classmethod
    def _missing_(cls, value):
        # Spellings the web client sends
        aliases = {"postgres": cls.RELATIONAL, "postgresql": cls.RELATIONAL, "mongodb": cls.DOCUMENT, "mongo": cls.DOCUMENT}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


@dataclass(frozen=True)
class RecordRef:
    id: str
    backend: Backend

    def __str__(self) -> str:
        return f"{self.backend.value}:{self.id}"


@dataclass(frozen=True)
class FileRecord:
    id: str
    backend: Backend
    original_name: str
    stored_path: str
    extension: str
    category: str
    tags: tuple[str, ...]
    size_bytes: Optional[int]
    created_at: datetime
    mime_type: Optional[str] = None

    @property
    def ref(self) -> RecordRef:
        return RecordRef(self.id, self.backend)


@dataclass
class NewFileRecord:
    """Everything needed to insert a record whose blob is already written."""
    original_name: str
    stored_path: str
    category: str = ""
    tags: Sequence[str] = ()
    extension: Optional[str] = None
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FileFilter:
    """Conjunction of optional predicates. Empty filter matches everything."""
    query: Optional[str] = None
    category: Optional[str] = None
    extension: Optional[str] = None
    tags: tuple[str, ...] = ()

    @classmethod
    def build(cls, query=None, category=None, extension=None, tags=None) -> "FileFilter":
        """Normalize raw request values; blanks count as absent."""
        return cls(
            query=(query or "").strip() or None,
            category=(category or "").strip() or None,
            extension=normalize_extension(extension) or None,
            tags=normalize_tags(tags or ()),
        )

    def matches(self, record: FileRecord) -> bool:
        if self.query and self.query.lower() not in record.original_name.lower():
            return False
        if self.category is not None and record.category != self.category:
            return False
        if self.extension is not None and record.extension != self.extension:
            return False
        return set(self.tags).issubset(record.tags)


@dataclass
class BackendStats:
    total: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_extension: dict[str, int] = field(default_factory=dict)

    @classmethod
    def combine(cls, *parts: "BackendStats") -> "BackendStats":
        categories: Counter = Counter()
        extensions: Counter = Counter()
        for part in parts:
            categories.update(part.by_category)
            extensions.update(part.by_extension)
        return cls(
            total=sum(p.total for p in parts),
            by_category=dict(categories),
            by_extension=dict(extensions),
        )


@dataclass
class AggregateStats:
    relational: BackendStats
    document: BackendStats
    combined: BackendStats


class MetadataStore(Protocol):
    """Capability both backends provide. Filters have identical semantics in each."""

    backend: Backend

    async def list(self, file_filter: FileFilter) -> list[FileRecord]: ...

    async def get(self, record_id: str) -> FileRecord: ...

    async def insert(self, new: NewFileRecord) -> FileRecord: ...

    async def rename(self, record_id: str, new_name: str) -> FileRecord: ...

    async def delete(self, record_id: str) -> FileRecord: ...

    async def aggregate(self) -> BackendStats: ...


# ─── Normalization helpers ────────────────────────────────────────

_FORBIDDEN_NAME_CHARS = ("/", "\\", "\x00")


def normalize_extension(value: Optional[str]) -> str:
    return (value or "").strip().lstrip(".").lower()


def extension_of(name: str) -> str:
    return normalize_extension(PurePosixPath(name).suffix)


def normalize_tags(tags) -> tuple[str, ...]:
    """Strip blanks and duplicates, keep first-seen order. Accepts 'a,b' strings too."""
    if isinstance(tags, str):
        tags = tags.split(",")
    seen: dict[str, None] = {}
    for tag in tags:
        tag = str(tag).strip()
        if tag:
            seen.setdefault(tag, None)
    return tuple(seen)


def validate_file_name(name: Optional[str]) -> str:
    """Return the trimmed name or raise InvalidInputError.

    Names are display-only but must never be usable as a path.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("File name must not be empty")
    if any(ch in cleaned for ch in _FORBIDDEN_NAME_CHARS):
        raise InvalidInputError(f"File name must not contain path separators: {cleaned!r}")
    if cleaned in (".", ".."):
        raise InvalidInputError(f"Invalid file name: {cleaned!r}")
    return cleaned


def as_utc(value: datetime) -> datetime:
    """SQLite and some Mongo clients hand back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
