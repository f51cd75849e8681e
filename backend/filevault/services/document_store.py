"""Document metadata store - one Mongo document per file in a single collection.

Native documents use camelCase keys:

    {"_id": ObjectId, "originalName", "storedPath", "extension", "category",
     "tags": [...], "sizeBytes", "mimeType", "createdAt"}
"""
import logging
import re
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from filevault.errors import BackendUnavailableError, NotFoundError
from filevault.models.base import utcnow
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


def build_mongo_filter(file_filter: FileFilter) -> dict[str, Any]:
    """Translate the shared filter into a Mongo query with the same semantics as the SQL one."""
    query: dict[str, Any] = {}
    if file_filter.query:
        query["originalName"] = {"$regex": re.escape(file_filter.query), "$options": "i"}
    if file_filter.category is not None:
        query["category"] = file_filter.category
    if file_filter.extension is not None:
        query["extension"] = file_filter.extension
    if file_filter.tags:
        query["tags"] = {"$all": list(file_filter.tags)}
    return query


def to_record(doc: dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=str(doc["_id"]),
        backend=Backend.DOCUMENT,
        original_name=doc.get("originalName", ""),
        stored_path=doc.get("storedPath", ""),
        extension=doc.get("extension") or "",
        category=doc.get("category") or "",
        tags=normalize_tags(doc.get("tags") or ()),
        size_bytes=doc.get("sizeBytes"),
        created_at=as_utc(doc["createdAt"]),
        mime_type=doc.get("mimeType"),
    )


def to_document(new: NewFileRecord) -> dict[str, Any]:
    return {
        "originalName": new.original_name,
        "storedPath": new.stored_path,
        "extension": normalize_extension(new.extension) if new.extension is not None else extension_of(new.original_name),
        "category": new.category,
        "tags": list(normalize_tags(new.tags)),
        "sizeBytes": new.size_bytes,
        "mimeType": new.mime_type,
        "createdAt": new.created_at or utcnow(),
    }


def _object_id(record_id: str) -> ObjectId:
    try:
        return ObjectId(str(record_id))
    except (InvalidId, TypeError):
        raise NotFoundError(f"File {record_id} not found in document store")


def _counts(buckets: list[dict]) -> dict[str, int]:
    return {(b["_id"] or ""): b["count"] for b in buckets}


class DocumentMetadataStore:
    """File metadata in a Mongo collection, reached through pymongo's async API."""

    backend = Backend.DOCUMENT

    def __init__(self, collection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        try:
            await self.collection.create_index([("createdAt", DESCENDING)])
            await self.collection.create_index("category")
            await self.collection.create_index("extension")
            await self.collection.create_index("tags")
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store index creation failed: {e}") from e

    async def list(self, file_filter: FileFilter) -> list[FileRecord]:
        try:
            cursor = self.collection.find(build_mongo_filter(file_filter)).sort("createdAt", DESCENDING)
            docs = await cursor.to_list(None)
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store query failed: {e}") from e
        return [to_record(d) for d in docs]

    async def get(self, record_id: str) -> FileRecord:
        oid = _object_id(record_id)
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store lookup failed: {e}") from e
        if not doc:
            raise NotFoundError(f"File {record_id} not found in document store")
        return to_record(doc)

    async def insert(self, new: NewFileRecord) -> FileRecord:
        doc = to_document(new)
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store insert failed: {e}") from e
        doc["_id"] = result.inserted_id
        return to_record(doc)

    async def rename(self, record_id: str, new_name: str) -> FileRecord:
        oid = _object_id(record_id)
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": {"originalName": new_name}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store update failed: {e}") from e
        if not doc:
            raise NotFoundError(f"File {record_id} not found in document store")
        return to_record(doc)

    async def delete(self, record_id: str) -> FileRecord:
        oid = _object_id(record_id)
        try:
            doc = await self.collection.find_one_and_delete({"_id": oid})
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store delete failed: {e}") from e
        if not doc:
            raise NotFoundError(f"File {record_id} not found in document store")
        return to_record(doc)

    async def aggregate(self) -> BackendStats:
        pipeline = [
            {
                "$facet": {
                    "total": [{"$count": "count"}],
                    "byCategory": [{"$group": {"_id": "$category", "count": {"$sum": 1}}}],
                    "byExtension": [{"$group": {"_id": "$extension", "count": {"$sum": 1}}}],
                }
            }
        ]
        try:
            cursor = await self.collection.aggregate(pipeline)
            facets = await cursor.to_list(None)
        except PyMongoError as e:
            raise BackendUnavailableError(f"Document store aggregate failed: {e}") from e
        # $facet always yields one document, with empty arrays on an empty collection
        facet = facets[0] if facets else {}
        total = facet.get("total") or []
        return BackendStats(
            total=total[0]["count"] if total else 0,
            by_category=_counts(facet.get("byCategory", [])),
            by_extension=_counts(facet.get("byExtension", [])),
        )
