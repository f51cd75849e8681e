"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filevault.config import settings
from filevault.database import build_engine, build_mongo_client
from filevault.errors import (
    BackendUnavailableError,
    BlobIOError,
    FileVaultError,
    InvalidFormatError,
    InvalidInputError,
    NotFoundError,
)
from filevault.models import Base
from filevault.services.bulk import BulkOperationEngine
from filevault.services.document_store import DocumentMetadataStore
from filevault.services.file_storage import BlobStore
from filevault.services.merge_engine import MergeEngine
from filevault.services.records import Backend
from filevault.services.registry import FileRegistry
from filevault.services.relational_store import RelationalMetadataStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open both metadata backends, create the schema, wire up the engines."""
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    mongo = build_mongo_client(settings.MONGO_URL)
    document_store = DocumentMetadataStore(mongo[settings.MONGO_DB][settings.MONGO_COLLECTION])
    await document_store.ensure_indexes()

    registry = FileRegistry(
        relational=RelationalMetadataStore(engine),
        document=document_store,
        blobs=BlobStore(settings.FILE_STORAGE_PATH),
        default_category=settings.DEFAULT_CATEGORY,
    )
    app.state.registry = registry
    app.state.merge_engine = MergeEngine(registry, Backend(settings.DERIVED_RECORD_BACKEND))
    app.state.bulk_engine = BulkOperationEngine(registry, concurrency=settings.BULK_CONCURRENCY)
    logger.info(f"File registry ready (blobs at {registry.blobs.root})")

    yield

    # Cleanup
    await mongo.close()
    await engine.dispose()


app = FastAPI(
    title="File Vault API",
    version="1.0.0",
    description="Browse, tag, merge and delete files whose metadata lives in a relational and a document store.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error kinds the core reports -> HTTP status. Server-side kinds get a generic message.
_ERROR_STATUS = {
    NotFoundError: 404,
    InvalidInputError: 400,
    InvalidFormatError: 400,
    BackendUnavailableError: 500,
    BlobIOError: 500,
}
_GENERIC_DETAIL = {
    BackendUnavailableError: "Storage backend unavailable",
    BlobIOError: "File storage error",
}


@app.exception_handler(FileVaultError)
async def file_vault_error_handler(request: Request, exc: FileVaultError):
    kind = next((k for k in _ERROR_STATUS if isinstance(exc, k)), None)
    status = _ERROR_STATUS.get(kind, 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
        detail = _GENERIC_DETAIL.get(kind, "Internal server error")
    else:
        detail = str(exc)
    return JSONResponse(status_code=status, content={"detail": detail})


@app.get("/api/health")
async def health_check():
    """Liveness probe."""
    return {"status": "ok"}


# Register routers
from filevault.routes.files import router as files_router
from filevault.routes.stats import router as stats_router
app.include_router(files_router)
app.include_router(stats_router)
