"""FastAPI dependencies for the process-wide engines.

The lifespan in main.py builds the registry and engines once and parks them
on app.state. Tests swap them with app.dependency_overrides.

Usage in routes:
    @router.get("/items")
    async def list_items(registry: FileRegistry = Depends(get_registry)):
        return await registry.list()
"""
from fastapi import Request

from filevault.services.bulk import BulkOperationEngine
from filevault.services.merge_engine import MergeEngine
from filevault.services.registry import FileRegistry


def get_registry(request: Request) -> FileRegistry:
    return request.app.state.registry


def get_merge_engine(request: Request) -> MergeEngine:
    return request.app.state.merge_engine


def get_bulk_engine(request: Request) -> BulkOperationEngine:
    return request.app.state.bulk_engine
