"""Bulk operations over a mixed set of (id, backend) references.

Each reference is attempted independently and produces an outcome value;
the batch result is a fold over those outcomes in input order. One failing
item never aborts the batch.

There is no resumable state: if the process dies mid-batch, items already
deleted stay deleted and the rest were simply never attempted.
"""
import asyncio
import io
import logging
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Optional, Sequence

from filevault.errors import FileVaultError, InvalidInputError
from filevault.services.records import RecordRef
from filevault.services.registry import FileRegistry

logger = logging.getLogger(__name__)


class BulkAction(str, Enum):
    DELETE = "delete"


@dataclass(frozen=True)
class ItemOutcome:
    ref: RecordRef
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkResult:
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> "BulkResult":
        if outcome.ok:
            self.succeeded += 1
        else:
            self.failed += 1
            self.errors.append(outcome.error)
        return self


def _describe(exc: BaseException) -> str:
    msg = str(exc).strip()
    return msg or type(exc).__name__


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    stem, suffix = PurePosixPath(name).stem, PurePosixPath(name).suffix
    n = 1
    while f"{stem} ({n}){suffix}" in taken:
        n += 1
    return f"{stem} ({n}){suffix}"


class BulkOperationEngine:
    def __init__(self, registry: FileRegistry, concurrency: int = 1):
        self.registry = registry
        self.concurrency = max(1, concurrency)

    async def _run_bounded(
        self, refs: Sequence[RecordRef], attempt: Callable[[RecordRef], Awaitable[ItemOutcome]]
    ) -> list[ItemOutcome]:
        """Run attempt(ref) for every ref with at most `concurrency` in flight, results in input order."""
        if self.concurrency == 1:
            return [await attempt(ref) for ref in refs]

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(ref: RecordRef) -> ItemOutcome:
            async with semaphore:
                return await attempt(ref)

        return list(await asyncio.gather(*(_one(ref) for ref in refs)))

    async def _attempt_delete(self, ref: RecordRef) -> ItemOutcome:
        try:
            await self.registry.delete(ref.id, ref.backend)
        except FileVaultError as e:
            logger.warning(f"Bulk delete of {ref} failed: {e}")
            return ItemOutcome(ref, f"Failed to delete file {ref.id}: {_describe(e)}")
        except Exception as e:
            logger.exception(f"Unexpected error deleting {ref}")
            return ItemOutcome(ref, f"Failed to delete file {ref.id}: {_describe(e)}")
        return ItemOutcome(ref)

    async def run(self, action: BulkAction, refs: Sequence[RecordRef]) -> BulkResult:
        try:
            action = BulkAction(action)
        except ValueError:
            raise InvalidInputError(f"Invalid action: {action}")
        if action is BulkAction.DELETE:
            return await self.bulk_delete(refs)
        raise InvalidInputError(f"Invalid action: {action.value}")

    async def bulk_delete(self, refs: Sequence[RecordRef]) -> BulkResult:
        """Delete every referenced record; empty input is a caller error."""
        if not refs:
            raise InvalidInputError("At least one file is required for a bulk operation")
        outcomes = await self._run_bounded(refs, self._attempt_delete)
        result = BulkResult()
        for outcome in outcomes:
            result.add(outcome)
        logger.info(f"Bulk delete finished: {result.succeeded} succeeded, {result.failed} failed")
        return result

    async def archive(self, refs: Sequence[RecordRef]) -> tuple[bytes, list[str]]:
        """Zip the blobs of the referenced records under their original names.

        Records that cannot be resolved or read are skipped and reported.
        """
        if not refs:
            raise InvalidInputError("At least one file is required for a bulk operation")

        contents: dict[RecordRef, tuple[str, bytes]] = {}

        async def _attempt_read(ref: RecordRef) -> ItemOutcome:
            try:
                record = await self.registry.get(ref.id, ref.backend)
                contents[ref] = (record.original_name, await self.registry.read_content(record))
            except FileVaultError as e:
                logger.warning(f"Skipping {ref} in archive: {e}")
                return ItemOutcome(ref, f"Failed to add file {ref.id}: {_describe(e)}")
            return ItemOutcome(ref)

        outcomes = await self._run_bounded(refs, _attempt_read)

        buffer = io.BytesIO()
        taken: set[str] = set()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for outcome in outcomes:
                if not outcome.ok or outcome.ref not in contents:
                    continue
                name, data = contents[outcome.ref]
                name = _unique_name(name, taken)
                taken.add(name)
                archive.writestr(name, data)
        return buffer.getvalue(), [o.error for o in outcomes if not o.ok]
