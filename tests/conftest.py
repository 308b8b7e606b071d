"""Shared fixtures: Helix payload factories and in-memory collaborators."""

from __future__ import annotations

import pytest

from clipsync.models.clip import Clip, ClipFilters, ClipPage


def make_helix_clip(
    clip_id: str,
    *,
    title: str = "Great play",
    created_at: str = "2024-03-01T10:00:00Z",
    game_id: str = "",
    view_count: int = 10,
) -> dict:
    """Build a Helix ``/clips`` item."""
    return {
        "id": clip_id,
        "url": f"https://clips.twitch.tv/{clip_id}",
        "broadcaster_id": "1234",
        "broadcaster_name": "Streamer",
        "creator_name": "viewer42",
        "game_id": game_id,
        "title": title,
        "view_count": view_count,
        "created_at": created_at,
        "thumbnail_url": f"https://clips-media.example/{clip_id}.jpg",
        "duration": 28.5,
    }


class FakeClipRepository:
    """In-memory stand-in honouring the insert-or-ignore / replace contracts."""

    def __init__(self, clips: list[Clip] | None = None) -> None:
        self.rows: dict[str, Clip] = {c.id: c for c in clips or []}
        self.writes = 0

    async def upsert_ignore(self, clip: Clip) -> bool:
        if clip.id in self.rows:
            return False
        self.rows[clip.id] = clip
        self.writes += 1
        return True

    async def upsert_replace(self, clip: Clip) -> bool:
        existing = self.rows.get(clip.id)
        if existing is not None:
            clip.created_at = existing.created_at
        self.rows[clip.id] = clip
        self.writes += 1
        return existing is None

    async def exists(self, clip_id: str) -> bool:
        return clip_id in self.rows

    async def count(self) -> int:
        return len(self.rows)

    async def query_random(self, filters: ClipFilters) -> Clip | None:
        return next(iter(self.rows.values()), None)


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    @property
    def enabled(self) -> bool:
        return True

    async def notify(self, clip: dict) -> bool:
        self.sent.append(clip)
        return True


class FakeTwitchAPI:
    """Serves pre-built pages keyed by cursor and records every call."""

    def __init__(
        self,
        pages: list[list[dict]] | None = None,
        *,
        broadcaster_id: str | None = "1234",
        clips_by_id: dict[str, dict] | None = None,
        live: bool = False,
    ) -> None:
        self.pages = pages or []
        self.broadcaster_id = broadcaster_id
        self.clips_by_id = clips_by_id or {}
        self.live = live
        self.calls: list[tuple] = []

    async def get_broadcaster_id(self, login: str) -> str | None:
        self.calls.append(("users", login))
        return self.broadcaster_id

    async def get_clips(self, broadcaster_id, first=20, *, started_at=None, after=None):
        self.calls.append(("clips", after, started_at, first))
        index = int(after) if after else 0
        clips = self.pages[index] if index < len(self.pages) else []
        cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return ClipPage(clips=[dict(c) for c in clips], cursor=cursor)

    async def get_clip(self, clip_id: str) -> dict | None:
        self.calls.append(("clip", clip_id))
        clip = self.clips_by_id.get(clip_id)
        return dict(clip) if clip else None

    async def get_game_names(self, game_ids: list[str]) -> dict[str, str]:
        self.calls.append(("games", tuple(game_ids)))
        return {gid: f"Game {gid}" for gid in game_ids if gid}

    async def is_live(self, broadcaster_id: str) -> bool:
        self.calls.append(("streams", broadcaster_id))
        return self.live

    async def subscribe_clip_created(self, broadcaster_id, callback_url, secret) -> bool:
        self.calls.append(("subscribe", broadcaster_id, callback_url))
        return True

    @property
    def upstream_calls(self) -> int:
        return len(self.calls)


@pytest.fixture
def stored_clip() -> Clip:
    return Clip.from_helix(make_helix_clip("Stored1"))


@pytest.fixture
def fake_repository() -> FakeClipRepository:
    return FakeClipRepository()


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()
