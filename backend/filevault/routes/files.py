"""Files API routes.

Thin HTTP layer over the registry and the engines. Errors from the core
propagate as FileVaultError and are turned into status codes in main.py.
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Response, UploadFile, File as FastAPIFile
from fastapi.responses import FileResponse

from filevault.dependencies import get_bulk_engine, get_merge_engine, get_registry
from filevault.errors import BlobIOError, FileVaultError
from filevault.schemas.common import DeleteResponse
from filevault.schemas.file import (
    ArchiveRequest,
    BulkRequest,
    BulkResponse,
    BulkResultResponse,
    FileListResponse,
    FileResponse as FileResponseSchema,
    MergePreviewResponse,
    MergeRequest,
    RenameRequest,
)
from filevault.services.bulk import BulkAction, BulkOperationEngine
from filevault.services.merge_engine import MergeEngine
from filevault.services.records import Backend, FileFilter, NewFileRecord, extension_of
from filevault.services.registry import FileRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/files", tags=["files"])


async def _discard_upload(registry: FileRegistry, stored_path: str) -> None:
    try:
        await registry.blobs.delete(stored_path)
    except FileVaultError as e:
        logger.warning(f"Could not remove blob {stored_path!r} of a rejected upload: {e}")


@router.get("", response_model=FileListResponse)
async def search_files(
    query: Optional[str] = Query(None, description="Substring of the file name, case-insensitive"),
    category: Optional[str] = Query(None),
    extension: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma-separated; records must carry all of them"),
    registry: FileRegistry = Depends(get_registry),
):
    """List files from both backends, newest first."""
    file_filter = FileFilter.build(query=query, category=category, extension=extension, tags=tags)
    records = await registry.list(file_filter)
    return {"files": [FileResponseSchema.from_record(r) for r in records]}


@router.post("/upload", response_model=FileResponseSchema, status_code=201)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    backend: Backend = Form(Backend.RELATIONAL),
    category: str = Form(""),
    tags: str = Form(""),
    registry: FileRegistry = Depends(get_registry),
):
    """Upload a file into the blob area and register it in the chosen backend."""
    contents = await file.read()
    original_name = file.filename or "unnamed"
    stored_path = registry.blobs.new_path(extension_of(original_name))
    await registry.blobs.write(stored_path, contents)

    new = NewFileRecord(
        original_name=original_name,
        stored_path=stored_path,
        category=category,
        tags=tags.split(","),
        size_bytes=len(contents),
        mime_type=file.content_type,
    )
    try:
        record = await registry.create(new, backend)
    except FileVaultError:
        await _discard_upload(registry, stored_path)
        raise
    return FileResponseSchema.from_record(record)


@router.post("/bulk", response_model=BulkResponse)
async def bulk_operation(
    body: BulkRequest,
    bulk: BulkOperationEngine = Depends(get_bulk_engine),
):
    """Apply one action to many files. Per-file failures are reported, not raised."""
    result = await bulk.run(body.action, [f.to_ref() for f in body.files])
    return BulkResponse(
        message=f"Deleted {result.succeeded} files successfully",
        action=BulkAction.DELETE,
        results=BulkResultResponse(succeeded=result.succeeded, failed=result.failed, errors=result.errors),
    )


@router.post("/bulk/archive")
async def bulk_archive(
    body: ArchiveRequest,
    bulk: BulkOperationEngine = Depends(get_bulk_engine),
):
    """Download the selected files as one zip archive."""
    data, errors = await bulk.archive([f.to_ref() for f in body.files])
    return Response(
        content=data,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="files-{int(time.time() * 1000)}.zip"',
            "X-Archive-Skipped": str(len(errors)),
        },
    )


@router.post("/merge", response_model=FileResponseSchema, status_code=201)
async def merge_files(
    body: MergeRequest,
    merger: MergeEngine = Depends(get_merge_engine),
):
    """Merge two JSON files into a new file. The sources are left untouched."""
    first, second = body.refs()
    record = await merger.merge(first, second, body.strategy)
    return FileResponseSchema.from_record(record)


@router.post("/merge/preview", response_model=MergePreviewResponse)
async def preview_merge(
    body: MergeRequest,
    merger: MergeEngine = Depends(get_merge_engine),
):
    """Return the merged JSON without persisting anything."""
    first, second = body.refs()
    merged = await merger.preview(first, second, body.strategy)
    return MergePreviewResponse(strategy=body.strategy, merged=merged)


@router.get("/{file_id}", response_model=FileResponseSchema)
async def get_file_metadata(
    file_id: str,
    backend: Backend = Query(...),
    registry: FileRegistry = Depends(get_registry),
):
    """Get file metadata by ID and backend."""
    record = await registry.get(file_id, backend)
    return FileResponseSchema.from_record(record)


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    backend: Backend = Query(...),
    registry: FileRegistry = Depends(get_registry),
):
    """Download a file's content under its original name."""
    record = await registry.get(file_id, backend)
    path = registry.blobs.resolve(record.stored_path)
    if not path.is_file():
        raise BlobIOError(f"Blob missing for {record.ref}: {record.stored_path}")
    return FileResponse(
        path=path,
        filename=record.original_name,
        media_type=record.mime_type or "application/octet-stream",
    )


@router.patch("/{file_id}", response_model=FileResponseSchema)
async def rename_file(
    file_id: str,
    body: RenameRequest,
    registry: FileRegistry = Depends(get_registry),
):
    """Rename a file. Only the display name changes."""
    record = await registry.rename(file_id, body.backend, body.new_name)
    return FileResponseSchema.from_record(record)


@router.delete("/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    backend: Backend = Query(...),
    registry: FileRegistry = Depends(get_registry),
):
    """Delete a file record and its blob."""
    await registry.delete(file_id, backend)
    return {"deleted": True, "id": file_id, "backend": backend.value}
