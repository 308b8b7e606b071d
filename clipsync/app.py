"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from clipsync import __version__
from clipsync.core.config import Settings, get_settings
from clipsync.core.database import DatabaseManager
from clipsync.core.logging import setup_logging
from clipsync.migrations.runner import MigrationRunner
from clipsync.repositories.clip import ClipRepository
from clipsync.routers import clips_router, eventsub_router
from clipsync.services import (
    ClipScheduler,
    ClipSyncService,
    DiscordNotifier,
    EventSubVerifier,
    TwitchAPIClient,
)

logger = logging.getLogger(__name__)


async def _register_eventsub(sync_service: ClipSyncService) -> None:
    """Subscribe to clip.create once at startup; failures only disable push."""
    try:
        await sync_service.subscribe_to_clip_created()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception(f"EventSub subscription failed, relying on polling only: {e}")


def _build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle startup and shutdown"""
        app.state.started_at = time.time()

        logger.info(f"Starting clip sync for '{settings.twitch_username}'")
        logger.info(f"Environment: {settings.environment}")

        # Startup is fatal without a database: every flow needs the store
        db_manager = DatabaseManager(settings.database_url, ssl=settings.database_ssl)
        await db_manager.connect()
        await MigrationRunner(db_manager.pool).run_pending()

        twitch_api = TwitchAPIClient(settings.twitch_client_id, settings.twitch_client_secret)
        notifier = DiscordNotifier(settings.discord_webhook_url)
        sync_service = ClipSyncService(
            twitch_api,
            ClipRepository(db_manager.pool),
            notifier,
            settings.twitch_username,
            backfill_page_size=settings.backfill_page_size,
            recent_page_size=settings.recent_page_size,
            recent_window_hours=settings.recent_window_hours,
            webhook_callback_url=settings.webhook_callback_url,
            webhook_secret=settings.twitch_webhook_secret,
        )
        clip_scheduler = ClipScheduler(
            sync_service,
            backfill_cron=settings.cron_schedule,
            check_mode=settings.check_mode,
            check_cron=settings.check_cron_schedule,
            liveness_interval_minutes=settings.liveness_interval_minutes,
        )

        app.state.db_manager = db_manager
        app.state.sync_service = sync_service
        app.state.clip_scheduler = clip_scheduler
        app.state.eventsub_verifier = EventSubVerifier(
            settings.twitch_webhook_secret, settings.eventsub_max_age_seconds
        )

        if not notifier.enabled:
            logger.info("No Discord webhook configured, notifications disabled")

        clip_scheduler.start()

        subscribe_task: asyncio.Task | None = None
        if settings.push_enabled:
            if "twitch_webhook_secret" not in settings.model_fields_set:
                logger.warning(
                    "TWITCH_WEBHOOK_SECRET not set, using a random secret for this run; "
                    "an existing subscription signed with another secret will be rejected"
                )
            subscribe_task = asyncio.create_task(_register_eventsub(sync_service))

        yield

        # Shutdown
        logger.info("Shutting down clip sync")
        clip_scheduler.shutdown()
        if subscribe_task and not subscribe_task.done():
            subscribe_task.cancel()
        try:
            await twitch_api.close()
            await notifier.close()
            await db_manager.disconnect()
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="clipsync",
        description="Twitch clip sync with change detection and Discord notifications",
        version=__version__,
        lifespan=_build_lifespan(settings),
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.include_router(clips_router.router)
    app.include_router(eventsub_router.router)

    # Liveness probe, no external dependency
    @app.get("/health")
    async def health():
        """Liveness check for Docker / K8s (no DB dependency)"""
        started_at = getattr(app.state, "started_at", time.time())
        return {"status": "healthy", "uptime_seconds": int(time.time() - started_at)}

    @app.get("/status")
    async def status():
        """Readiness / status endpoint with DB health and sync state"""
        db_manager: DatabaseManager | None = getattr(app.state, "db_manager", None)
        sync_service: ClipSyncService | None = getattr(app.state, "sync_service", None)
        started_at = getattr(app.state, "started_at", time.time())
        return {
            "service": "clipsync",
            "version": __version__,
            "uptime_seconds": int(time.time() - started_at),
            "db_connected": db_manager is not None and await db_manager.check_health(),
            "sync": sync_service.status() if sync_service else None,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app
