"""Exception hierarchy for the clip sync service.

All application errors derive from :class:`ClipSyncError` so that job
wrappers and HTTP handlers can catch the family in one place. Subclasses
carry structured fields (status codes, ids) instead of encoding them in the
message string.
"""

from __future__ import annotations


class ClipSyncError(Exception):
    """Base exception for all clipsync errors."""


# ---------------------------------------------------------------------------
# Upstream (Twitch) errors
# ---------------------------------------------------------------------------


class TwitchAPIError(ClipSyncError):
    """Raised when Helix or the OAuth endpoint answers with a non-2xx status.

    Args:
        message: Human-readable description.
        status_code: HTTP status returned upstream, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(TwitchAPIError):
    """Credentials were rejected and a fresh token did not help."""


class UpstreamUnauthorizedError(TwitchAPIError):
    """A single Helix request came back 401.

    Internal signal consumed by the request helper, which refreshes the
    token and retries once before escalating to :class:`AuthError`.
    """

    def __init__(self, path: str) -> None:
        super().__init__(f"Unauthorized response from Helix /{path}", status_code=401)
        self.path = path


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class BroadcasterNotFoundError(ClipSyncError):
    """The configured broadcaster login does not resolve to a user."""

    def __init__(self, login: str) -> None:
        super().__init__(f"Broadcaster not found: {login}")
        self.login = login


class ClipNotFoundError(ClipSyncError):
    """No clip with the requested id exists upstream."""

    def __init__(self, clip_id: str) -> None:
        super().__init__(f"Clip not found: {clip_id}")
        self.clip_id = clip_id


class SignatureInvalidError(ClipSyncError):
    """An EventSub request failed HMAC or freshness verification."""


class NotificationDeliveryError(ClipSyncError):
    """The Discord webhook rejected or failed to receive a message."""
