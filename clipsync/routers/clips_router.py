"""Clip lookup and on-demand resync routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from clipsync.core.dependencies import get_clip_repository, get_sync_service
from clipsync.core.exceptions import ClipNotFoundError
from clipsync.models.clip import ClipFilters
from clipsync.repositories.clip import ClipRepository
from clipsync.services.clip_sync import ClipSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["clips"])


# ============================================
# Response Models
# ============================================


class ClipResponse(BaseModel):
    id: str
    url: str
    title: str
    game_name: str
    broadcaster_name: str
    created_at: str
    view_count: int


class SyncClipResponse(BaseModel):
    success: bool
    clip: dict | None = None
    error: str | None = None


# ============================================
# Endpoints
# ============================================


@router.get("/clip", response_model=ClipResponse)
async def get_random_clip(
    date: str | None = Query(None, description="DD/MM/YYYY, MM/YYYY or YYYY"),
    title: str | None = Query(None, description="Case and accent insensitive title fragment"),
    game: str | None = Query(None, description="Case and accent insensitive game fragment"),
    repository: ClipRepository = Depends(get_clip_repository),
) -> ClipResponse:
    """Return one random stored clip matching every given filter."""
    try:
        filters = ClipFilters.from_query(date=date, title=title, game=game)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    clip = await repository.query_random(filters)
    if clip is None:
        raise HTTPException(status_code=404, detail="No clip found for these criteria.")
    return ClipResponse(**clip.to_dict())


@router.api_route(
    "/sync-clip/{clip_id}", methods=["GET", "POST"], response_model=SyncClipResponse
)
async def sync_clip(
    clip_id: str,
    sync_service: ClipSyncService = Depends(get_sync_service),
):
    """Fetch one clip from Twitch and overwrite its stored row."""
    try:
        clip = await sync_service.sync_clip_by_id(clip_id)
    except ClipNotFoundError as e:
        return JSONResponse(
            status_code=404, content=SyncClipResponse(success=False, error=str(e)).model_dump()
        )
    except Exception as e:
        logger.exception(f"Resync of clip {clip_id} failed: {e}")
        return JSONResponse(
            status_code=500, content=SyncClipResponse(success=False, error=str(e)).model_dump()
        )

    return SyncClipResponse(success=True, clip=clip)
