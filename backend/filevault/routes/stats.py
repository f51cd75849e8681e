"""Stats API routes."""
from fastapi import APIRouter, Depends

from filevault.dependencies import get_registry
from filevault.schemas.file import StatsResponse
from filevault.services.registry import FileRegistry

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(registry: FileRegistry = Depends(get_registry)):
    """Counts per backend and combined, by category and by extension."""
    stats = await registry.aggregate_stats()
    return StatsResponse.from_stats(stats)
