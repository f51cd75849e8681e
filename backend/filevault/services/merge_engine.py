"""Merge two JSON file records into a new, third record.

Merging never touches the source records or their blobs. The result is
written as a fresh blob and registered in one fixed backend (the derived
record backend from settings), whatever backends the sources came from.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

from filevault.errors import FileVaultError, InvalidFormatError, InvalidInputError
from filevault.services.json_merge import MergeStrategy, merge_documents, parse_strategy
from filevault.services.records import Backend, FileRecord, NewFileRecord, RecordRef, normalize_tags
from filevault.services.registry import FileRegistry

logger = logging.getLogger(__name__)

MERGEABLE_EXTENSION = "json"


class MergeEngine:
    def __init__(self, registry: FileRegistry, derived_backend: Backend):
        self.registry = registry
        self.derived_backend = Backend(derived_backend)

    async def _load(self, ref: RecordRef) -> FileRecord:
        record = await self.registry.get(ref.id, ref.backend)
        if record.extension != MERGEABLE_EXTENSION:
            raise InvalidInputError(
                f"File '{record.original_name}' ({ref}) is not a JSON file and cannot be merged"
            )
        return record

    async def _parse(self, record: FileRecord) -> Any:
        content = await self.registry.read_content(record)
        try:
            return json.loads(content)
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            raise InvalidFormatError(
                f"File '{record.original_name}' ({record.ref}) is not valid JSON: {e}"
            ) from e

    async def _merged_value(self, first: RecordRef, second: RecordRef, strategy: MergeStrategy):
        strategy = parse_strategy(strategy)
        record_a, record_b = await asyncio.gather(self._load(first), self._load(second))
        value_a, value_b = await asyncio.gather(self._parse(record_a), self._parse(record_b))
        return record_a, record_b, merge_documents(value_a, value_b, strategy)

    async def preview(self, first: RecordRef, second: RecordRef, strategy: MergeStrategy) -> Any:
        """Compute the merged value without writing anything."""
        _, _, merged = await self._merged_value(first, second, strategy)
        return merged

    async def merge(self, first: RecordRef, second: RecordRef, strategy: MergeStrategy) -> FileRecord:
        strategy = parse_strategy(strategy)
        record_a, record_b, merged = await self._merged_value(first, second, strategy)

        data = json.dumps(merged, indent=2, ensure_ascii=False).encode("utf-8")
        stored_path = self.registry.blobs.new_path(MERGEABLE_EXTENSION)
        await self.registry.blobs.write(stored_path, data)

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        new = NewFileRecord(
            original_name=f"merged-{strategy.value}-{stamp}.json",
            stored_path=stored_path,
            category="",
            tags=normalize_tags([*record_a.tags, *record_b.tags]),
            extension=MERGEABLE_EXTENSION,
            size_bytes=len(data),
            mime_type="application/json",
        )
        try:
            record = await self.registry.create(new, self.derived_backend)
        except FileVaultError:
            await self._discard_blob(stored_path)
            raise
        logger.info(f"Merged {record_a.ref} and {record_b.ref} ({strategy.value}) into {record.ref}")
        return record

    async def _discard_blob(self, stored_path: str) -> None:
        try:
            await self.registry.blobs.delete(stored_path)
        except FileVaultError as e:
            logger.warning(f"Could not remove orphaned merge blob {stored_path!r}: {e}")
