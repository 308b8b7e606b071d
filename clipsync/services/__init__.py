"""Services layer - Business logic

Services are constructed once in the application lifespan and reached
from routers through dependency injection.
"""

from .clip_sync import ClipSyncService, SyncStats
from .discord_notifier import DiscordNotifier
from .eventsub import EventSubVerifier
from .scheduler import ClipScheduler
from .twitch_api import TwitchAPIClient

__all__ = [
    "ClipScheduler",
    "ClipSyncService",
    "DiscordNotifier",
    "EventSubVerifier",
    "SyncStats",
    "TwitchAPIClient",
]
