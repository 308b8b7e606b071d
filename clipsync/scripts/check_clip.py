"""Diagnose why a clip is or is not picked up by the sync.

Fetches the clip by id, then walks the broadcaster's clip pages the way the
full backfill does to see whether the listing ever returns it, and finally
checks whether the clip is already stored.

Usage:
    clipsync-check-clip CLIP_ID [--login LOGIN] [--page-size N] [--skip-db]
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from clipsync.core.config import get_settings
from clipsync.core.database import DatabaseManager, PoolConfig
from clipsync.core.exceptions import ClipSyncError
from clipsync.repositories.clip import ClipRepository
from clipsync.services.twitch_api import TwitchAPIClient

logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")


@dataclass
class ListingScan:
    """Where (if anywhere) a clip appeared while paging the listing."""

    found_on_page: int | None
    pages: int
    clips_scanned: int


async def scan_listing(
    twitch_api: TwitchAPIClient, broadcaster_id: str, clip_id: str, page_size: int
) -> ListingScan:
    cursor: str | None = None
    pages = scanned = 0
    while True:
        page = await twitch_api.get_clips(broadcaster_id, page_size, after=cursor)
        pages += 1
        scanned += len(page.clips)
        if any(c.get("id") == clip_id for c in page.clips):
            return ListingScan(found_on_page=pages, pages=pages, clips_scanned=scanned)
        if not page.cursor or not page.clips:
            return ListingScan(found_on_page=None, pages=pages, clips_scanned=scanned)
        cursor = page.cursor


async def check_clip(clip_id: str, login: str, page_size: int, skip_db: bool) -> int:
    settings = get_settings()
    twitch_api = TwitchAPIClient(settings.twitch_client_id, settings.twitch_client_secret)

    try:
        await twitch_api.ensure_token()
        print("[1] App token obtained")

        broadcaster_id = await twitch_api.get_broadcaster_id(login)
        if not broadcaster_id:
            print(f"[2] Broadcaster '{login}' not found")
            return 1
        print(f"[2] Broadcaster '{login}' -> {broadcaster_id}")

        clip = await twitch_api.get_clip(clip_id)
        if clip is None:
            print(f"[3] Clip {clip_id} not returned by /clips?id=")
        else:
            print(
                f"[3] Clip {clip_id}: {clip.get('title')!r} by {clip.get('creator_name')} "
                f"on {clip.get('created_at')} (broadcaster {clip.get('broadcaster_id')})"
            )
            if clip.get("broadcaster_id") != broadcaster_id:
                print("    Clip belongs to another broadcaster, the sync will never list it")

        scan = await scan_listing(twitch_api, broadcaster_id, clip_id, page_size)
        if scan.found_on_page:
            print(f"[4] Listed on page {scan.found_on_page} (first={page_size})")
        else:
            print(
                f"[4] Not listed: scanned {scan.clips_scanned} clips over {scan.pages} page(s)"
            )
    except ClipSyncError as e:
        print(f"Twitch request failed: {e}")
        return 1
    finally:
        await twitch_api.close()

    if skip_db:
        return 0

    db_manager = DatabaseManager(
        settings.database_url, PoolConfig(min_size=1, max_size=1), ssl=settings.database_ssl
    )
    await db_manager.connect()
    try:
        stored = await ClipRepository(db_manager.pool).exists(clip_id)
        print(f"[5] Stored locally: {'yes' if stored else 'no'}")
    finally:
        await db_manager.disconnect()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Diagnose clip sync for a single clip id")
    parser.add_argument("clip_id")
    parser.add_argument("--login", help="Broadcaster login (defaults to TWITCH_USERNAME)")
    parser.add_argument("--page-size", type=int, default=100)
    parser.add_argument("--skip-db", action="store_true", help="Do not query the clip store")
    args = parser.parse_args()

    login = args.login or get_settings().twitch_username
    sys.exit(asyncio.run(check_clip(args.clip_id, login, args.page_size, args.skip_db)))


if __name__ == "__main__":
    main()
