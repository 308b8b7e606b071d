"""Tests for the Discord webhook notifier."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest
import pytest_asyncio
import respx
from conftest import make_helix_clip

from clipsync.core.exceptions import NotificationDeliveryError
from clipsync.services.discord_notifier import (
    NOTIFICATION_CONTENT,
    TWITCH_PURPLE,
    DiscordNotifier,
    build_clip_embed,
)

WEBHOOK_URL = "https://discord.com/api/webhooks/123/abc"


class TestBuildClipEmbed:
    def test_core_fields(self) -> None:
        clip = make_helix_clip("A", title="Clutch", view_count=12)
        clip["game_name"] = "Valorant"

        embed = build_clip_embed(clip)

        assert embed.title == "Clutch"
        assert embed.url == "https://clips.twitch.tv/A"
        assert embed.color.value == TWITCH_PURPLE
        assert embed.thumbnail.url == "https://clips-media.example/A.jpg"
        assert embed.timestamp == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
        assert embed.footer.text == "Streamer • Twitch"
        fields = {f.name: f.value for f in embed.fields}
        assert fields == {
            "Creator": "viewer42",
            "Views": "12",
            "Duration": "28.5s",
            "Game": "Valorant",
        }

    def test_untitled_clip_and_unknown_game(self) -> None:
        embed = build_clip_embed(make_helix_clip("A", title=""))

        assert embed.title == "New clip!"
        assert "Game" not in [f.name for f in embed.fields]


@pytest_asyncio.fixture
async def notifier():
    instance = DiscordNotifier(WEBHOOK_URL)
    yield instance
    await instance.close()


@pytest.mark.asyncio
class TestNotify:
    async def test_disabled_without_url(self) -> None:
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post(WEBHOOK_URL)
            assert await DiscordNotifier("").notify(make_helix_clip("A")) is False
        assert not route.called

    async def test_posts_embed_with_content(self, notifier: DiscordNotifier) -> None:
        with respx.mock:
            route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(204))
            delivered = await notifier.notify(make_helix_clip("A"))

        assert delivered is True
        body = json.loads(route.calls.last.request.content)
        assert body["content"] == NOTIFICATION_CONTENT
        assert len(body["embeds"]) == 1
        assert body["embeds"][0]["url"] == "https://clips.twitch.tv/A"
        assert body["embeds"][0]["color"] == TWITCH_PURPLE

    @pytest.mark.parametrize("status", [429, 502])
    async def test_failed_send_is_not_retried(
        self, notifier: DiscordNotifier, status: int
    ) -> None:
        with respx.mock:
            route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(status))
            delivered = await notifier.notify(make_helix_clip("A"))

        assert delivered is False
        assert route.call_count == 1

    async def test_transport_error_is_swallowed(self, notifier: DiscordNotifier) -> None:
        with respx.mock:
            route = respx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("refused"))
            delivered = await notifier.notify(make_helix_clip("A"))

        assert delivered is False
        assert route.call_count == 1

    async def test_deliver_raises_on_error_status(self, notifier: DiscordNotifier) -> None:
        with respx.mock:
            respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(400, text="bad embed"))
            with pytest.raises(NotificationDeliveryError, match="400"):
                await notifier._deliver(build_clip_embed(make_helix_clip("A")))
