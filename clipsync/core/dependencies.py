"""Dependency injection utilities for FastAPI

Services are built once in the lifespan and stored on ``app.state``;
these accessors hand them to routers and let tests override them.
"""

from fastapi import HTTPException, Request

from clipsync.core.database import DatabaseManager
from clipsync.repositories.clip import ClipRepository
from clipsync.services.clip_sync import ClipSyncService
from clipsync.services.eventsub import EventSubVerifier


def get_clip_repository(request: Request) -> ClipRepository:
    db_manager: DatabaseManager = request.app.state.db_manager
    if not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return ClipRepository(db_manager.pool)


def get_sync_service(request: Request) -> ClipSyncService:
    return request.app.state.sync_service


def get_eventsub_verifier(request: Request) -> EventSubVerifier:
    return request.app.state.eventsub_verifier
