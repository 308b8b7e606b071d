"""Clip synchronisation and change detection.

Three flows write to the clip store:

* full backfill: walk every page of the broadcaster's clips, insert what is
  missing, never notify;
* incremental check: walk the recent window and notify for exactly the clips
  whose insert created a row;
* single-clip resync: fetch one clip by id and overwrite its row (push intake
  notifies only when that overwrite was in fact an insert).

Only the insert that first writes a row can trigger a notification, which
keeps notifications at most once per clip id across all flows.
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from clipsync.core.exceptions import BroadcasterNotFoundError, ClipNotFoundError
from clipsync.models.clip import Clip, format_timestamp
from clipsync.repositories.clip import ClipRepository
from clipsync.services.discord_notifier import DiscordNotifier
from clipsync.services.twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    """Counters for one pass over the upstream clip list."""

    pages: int = 0
    seen: int = 0
    inserted: int = 0
    notified: int = 0
    duration_seconds: float = 0.0


class ClipSyncService:
    """Owns the sync mutex, liveness cache and every store-mutating flow."""

    def __init__(
        self,
        twitch_api: TwitchAPIClient,
        repository: ClipRepository,
        notifier: DiscordNotifier,
        broadcaster_login: str,
        *,
        backfill_page_size: int = 50,
        recent_page_size: int = 100,
        recent_window_hours: int = 24,
        webhook_callback_url: str = "",
        webhook_secret: str = "",
    ):
        self.twitch_api = twitch_api
        self.repository = repository
        self.notifier = notifier
        self.broadcaster_login = broadcaster_login
        self.backfill_page_size = backfill_page_size
        self.recent_page_size = recent_page_size
        self.recent_window = timedelta(hours=recent_window_hours)
        self.webhook_callback_url = webhook_callback_url
        self.webhook_secret = webhook_secret

        self._backfill_running = False
        self._check_running = False
        self._is_live: bool | None = None
        self.last_backfill: SyncStats | None = None
        self.last_backfill_at: datetime | None = None

    @property
    def backfill_running(self) -> bool:
        return self._backfill_running

    @property
    def is_live(self) -> bool | None:
        return self._is_live

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _broadcaster_id(self) -> str:
        broadcaster_id = await self.twitch_api.get_broadcaster_id(self.broadcaster_login)
        if not broadcaster_id:
            raise BroadcasterNotFoundError(self.broadcaster_login)
        return broadcaster_id

    async def _attach_game_names(self, payloads: list[dict]) -> None:
        """Fill ``game_name`` on Helix payloads from their ``game_id``."""
        ids = [p.get("game_id", "") for p in payloads if not p.get("game_name")]
        if not any(ids):
            return
        names = await self.twitch_api.get_game_names(ids)
        for payload in payloads:
            if not payload.get("game_name"):
                payload["game_name"] = names.get(payload.get("game_id", ""), "")

    # ------------------------------------------------------------------
    # Full backfill
    # ------------------------------------------------------------------

    async def update_clips(self) -> SyncStats:
        """Walk every page of the broadcaster's clips and insert unknown ones.

        A 401 on any page is refreshed and that same page retried by the
        client, so the cursor never skips ahead. No notifications are sent.
        """
        self._backfill_running = True
        stats = SyncStats()
        started = time.monotonic()
        try:
            broadcaster_id = await self._broadcaster_id()
            logger.info(f"Full backfill started for {self.broadcaster_login}")

            cursor: str | None = None
            while True:
                page = await self.twitch_api.get_clips(
                    broadcaster_id, self.backfill_page_size, after=cursor
                )
                stats.pages += 1
                stats.seen += len(page.clips)

                await self._attach_game_names(page.clips)
                for payload in page.clips:
                    if await self.repository.upsert_ignore(Clip.from_helix(payload)):
                        stats.inserted += 1

                if not page.cursor or not page.clips:
                    break
                cursor = page.cursor

            stats.duration_seconds = round(time.monotonic() - started, 2)
            self.last_backfill = stats
            self.last_backfill_at = datetime.now(UTC)
            logger.info(
                f"Full backfill done: {stats.inserted} new of {stats.seen} clips "
                f"over {stats.pages} page(s) in {stats.duration_seconds}s"
            )
            return stats
        finally:
            self._backfill_running = False

    # ------------------------------------------------------------------
    # Single clip resync
    # ------------------------------------------------------------------

    async def _resync(self, clip_id: str) -> tuple[dict, bool]:
        payload = await self.twitch_api.get_clip(clip_id)
        if payload is None:
            raise ClipNotFoundError(clip_id)
        if payload.get("broadcaster_id") != await self._broadcaster_id():
            logger.warning(
                f"Clip {clip_id} belongs to broadcaster {payload.get('broadcaster_id')}, "
                f"not {self.broadcaster_login}"
            )
            raise ClipNotFoundError(clip_id)

        await self._attach_game_names([payload])
        created = await self.repository.upsert_replace(Clip.from_helix(payload))
        logger.info(f"Resynced clip {clip_id} ({'new' if created else 'updated'})")
        return payload, created

    async def sync_clip_by_id(self, clip_id: str) -> dict:
        """Fetch one clip and overwrite its stored row. Returns the payload.

        Raises ClipNotFoundError, leaving the store untouched, when the id
        is unknown upstream or belongs to another channel.
        """
        payload, _ = await self._resync(clip_id)
        return payload

    async def handle_clip_created(self, clip_id: str) -> dict:
        """Push intake for a clip.create event."""
        payload, created = await self._resync(clip_id)
        if created:
            await self.notifier.notify(payload)
        else:
            logger.debug(f"Clip {clip_id} was already stored, no notification")
        return payload

    # ------------------------------------------------------------------
    # Incremental check
    # ------------------------------------------------------------------

    async def check_recent_clips(self) -> SyncStats | None:
        """Record and notify clips created within the recent window.

        Skipped (returns None) while a full backfill holds the mutex, while
        the store is still empty, or while another check is in flight.
        """
        if self._backfill_running:
            logger.info("Full backfill in progress, skipping incremental check")
            return None
        if self._check_running:
            logger.info("Incremental check already running, skipping")
            return None

        self._check_running = True
        try:
            if await self.repository.count() == 0:
                logger.info("Clip store is empty, skipping incremental check until backfill")
                return None

            broadcaster_id = await self._broadcaster_id()
            started_at = format_timestamp(datetime.now(UTC) - self.recent_window)
            stats = SyncStats()
            started = time.monotonic()

            cursor: str | None = None
            while True:
                page = await self.twitch_api.get_clips(
                    broadcaster_id,
                    self.recent_page_size,
                    started_at=started_at,
                    after=cursor,
                )
                stats.pages += 1
                stats.seen += len(page.clips)

                await self._attach_game_names(page.clips)
                for payload in page.clips:
                    if await self.repository.upsert_ignore(Clip.from_helix(payload)):
                        stats.inserted += 1
                        logger.info(f"New clip detected: {payload['id']} {payload.get('title')!r}")
                        if await self.notifier.notify(payload):
                            stats.notified += 1

                if not page.cursor or not page.clips:
                    break
                cursor = page.cursor

            stats.duration_seconds = round(time.monotonic() - started, 2)
            if stats.inserted:
                logger.info(f"Incremental check recorded {stats.inserted} new clip(s)")
            else:
                logger.debug(f"Incremental check found no new clips ({stats.seen} recent)")
            return stats
        finally:
            self._check_running = False

    # ------------------------------------------------------------------
    # Liveness and subscription
    # ------------------------------------------------------------------

    async def refresh_liveness(self) -> tuple[bool, bool]:
        """Probe whether the broadcaster is live.

        Returns ``(live, changed)``; the first probe always counts as a change.
        """
        live = await self.twitch_api.is_live(await self._broadcaster_id())
        changed = live != self._is_live
        if changed:
            logger.info(f"{self.broadcaster_login} is now {'live' if live else 'offline'}")
        self._is_live = live
        return live, changed

    async def subscribe_to_clip_created(self) -> bool | None:
        """Register the clip.create webhook. None when push intake is disabled."""
        if not self.webhook_callback_url:
            logger.info("No webhook callback URL configured, push intake disabled")
            return None
        return await self.twitch_api.subscribe_clip_created(
            await self._broadcaster_id(), self.webhook_callback_url, self.webhook_secret
        )

    def status(self) -> dict:
        last_at = self.last_backfill_at
        return {
            "broadcaster": self.broadcaster_login,
            "backfill_running": self._backfill_running,
            "check_running": self._check_running,
            "is_live": self._is_live,
            "last_backfill": asdict(self.last_backfill) if self.last_backfill else None,
            "last_backfill_at": last_at.isoformat() if last_at else None,
        }
