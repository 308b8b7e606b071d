"""Discord webhook notifications for newly discovered clips."""

import logging
from datetime import datetime

import discord
import httpx

from clipsync.core.exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)

TWITCH_PURPLE = 0x9146FF
TWITCH_ICON_URL = "https://static.twitchcdn.net/assets/favicon-32-e29e246c157142c94346.png"
NOTIFICATION_CONTENT = "🎬 **New clip created!**"


def _parse_created_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def build_clip_embed(clip: dict) -> discord.Embed:
    """Render a Helix clip payload as a Discord embed."""
    embed = discord.Embed(
        title=clip.get("title") or "New clip!",
        url=clip.get("url"),
        color=TWITCH_PURPLE,
        timestamp=_parse_created_at(clip.get("created_at")),
    )

    if clip.get("thumbnail_url"):
        embed.set_thumbnail(url=clip["thumbnail_url"])

    embed.add_field(name="Creator", value=clip.get("creator_name") or "Unknown", inline=True)
    embed.add_field(name="Views", value=str(clip.get("view_count", 0)), inline=True)
    embed.add_field(name="Duration", value=f"{clip.get('duration', 0)}s", inline=True)
    if clip.get("game_name"):
        embed.add_field(name="Game", value=clip["game_name"], inline=True)

    embed.set_footer(
        text=f"{clip.get('broadcaster_name') or 'Twitch'} • Twitch",
        icon_url=TWITCH_ICON_URL,
    )
    return embed


class DiscordNotifier:
    """Posts one embed per new clip to a Discord webhook.

    Delivery is best effort: each clip gets exactly one POST, failures are
    logged and never reach the caller.
    """

    def __init__(self, webhook_url: str = "", *, timeout: float = 5.0):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _deliver(self, embed: discord.Embed) -> None:
        # Single request, no retry: a 5xx may still have been posted upstream
        payload = {"content": NOTIFICATION_CONTENT, "embeds": [embed.to_dict()]}
        try:
            response = await self._get_client().post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"Discord webhook delivery failed: {e}") from e

        if not response.is_success:
            raise NotificationDeliveryError(
                f"Discord webhook returned {response.status_code}: {response.text[:200]}"
            )

    async def notify(self, clip: dict) -> bool:
        """Send a notification for *clip*. Returns True when delivered."""
        if not self.enabled:
            return False

        try:
            await self._deliver(build_clip_embed(clip))
        except NotificationDeliveryError as e:
            logger.error(f"Failed to notify clip {clip.get('id')}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error notifying clip {clip.get('id')}: {e}")
            return False

        logger.info(f"Notified Discord about clip {clip.get('id')}")
        return True

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
