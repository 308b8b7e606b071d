"""EventSub webhook receiver"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from clipsync.core.dependencies import get_eventsub_verifier, get_sync_service
from clipsync.core.exceptions import SignatureInvalidError
from clipsync.services.clip_sync import ClipSyncService
from clipsync.services.eventsub import (
    MESSAGE_ID_HEADER,
    MESSAGE_TYPE_HEADER,
    MESSAGE_TYPE_NOTIFICATION,
    MESSAGE_TYPE_REVOCATION,
    MESSAGE_TYPE_VERIFICATION,
    EventSubVerifier,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["eventsub"])


async def _process_clip_created(sync_service: ClipSyncService, clip_id: str) -> None:
    try:
        await sync_service.handle_clip_created(clip_id)
    except Exception as e:
        logger.exception(f"Failed to process clip.create for {clip_id}: {e}")


@router.post("/eventsub")
async def eventsub_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    verifier: EventSubVerifier = Depends(get_eventsub_verifier),
    sync_service: ClipSyncService = Depends(get_sync_service),
) -> Response:
    """Receive EventSub deliveries for clip.create."""
    # Signature covers the exact bytes sent, so read before any parsing
    body = await request.body()

    try:
        verifier.verify(request.headers, body)
    except SignatureInvalidError as e:
        logger.warning(f"Rejected EventSub request: {e}")
        return PlainTextResponse("Forbidden", status_code=403)

    try:
        payload = json.loads(body)
    except ValueError:
        return PlainTextResponse("Bad Request", status_code=400)
    if not isinstance(payload, dict):
        return PlainTextResponse("Bad Request", status_code=400)

    message_type = request.headers.get(MESSAGE_TYPE_HEADER, "")
    subscription = payload.get("subscription") or {}
    if not isinstance(subscription, dict):
        subscription = {}

    if message_type == MESSAGE_TYPE_VERIFICATION:
        logger.info(f"EventSub {subscription.get('type')} subscription verified")
        return PlainTextResponse(str(payload.get("challenge") or ""), status_code=200)

    if message_type == MESSAGE_TYPE_REVOCATION:
        logger.warning(
            f"EventSub {subscription.get('type')} revoked: {subscription.get('status')}"
        )
        return Response(status_code=200)

    if message_type != MESSAGE_TYPE_NOTIFICATION:
        logger.info(f"Ignoring EventSub message type '{message_type}'")
        return Response(status_code=200)

    if verifier.is_duplicate(request.headers[MESSAGE_ID_HEADER]):
        logger.debug("Duplicate EventSub delivery acknowledged")
        return Response(status_code=200)

    event = payload.get("event")
    clip_id = event.get("id") if isinstance(event, dict) else None
    if subscription.get("type") == "clip.create" and clip_id:
        logger.info(f"Clip created via EventSub: {clip_id}")
        background_tasks.add_task(_process_clip_created, sync_service, clip_id)
    else:
        logger.info(f"Ignoring EventSub notification {subscription.get('type')}")

    return Response(status_code=200)
