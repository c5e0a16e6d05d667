"""
Cache API routes for content results.

Provides endpoints for:
- GET /api/cache/stats - Hit, miss and coalescing counters
- DELETE /api/cache/expired - Drop entries past their TTL
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from voicenotes.api.routes import get_manager
from voicenotes.models.schemas import CacheStats
from voicenotes.services.pipeline import PipelineManager, ResultCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


def get_cache(manager: PipelineManager = Depends(get_manager)) -> ResultCache:
    """
    Result cache of the running pipeline.

    Raises:
        404: Caching is disabled
    """
    if manager.cache is None:
        raise HTTPException(status_code=404, detail="Result cache is disabled")
    return manager.cache


@router.get("/stats", response_model=CacheStats)
async def get_cache_stats(cache: ResultCache = Depends(get_cache)) -> CacheStats:
    """Content result cache counters."""
    return CacheStats(**cache.stats())


@router.delete("/expired")
async def purge_expired(cache: ResultCache = Depends(get_cache)) -> dict:
    """Drop cached results past their TTL."""
    purged = cache.purge_expired()
    logger.info(f"Purged {purged} expired cache entries")
    return {"purged": purged}
