"""Twitch API client service.

Only app access tokens (client credentials) are used: every endpoint the
clip sync needs is public. The token is fetched lazily, kept in memory and
replaced wholesale when Helix answers 401; there is no expiry timer.
"""

import asyncio
import logging

import httpx
from cachetools import TTLCache

from clipsync.core.exceptions import AuthError, TwitchAPIError, UpstreamUnauthorizedError
from clipsync.models.clip import ClipPage

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"

# Helix caps `first` at 100 for clips and at 100 ids per games lookup
MAX_PAGE_SIZE = 100


class TwitchAPIClient:
    """Client for the Helix endpoints used by the clip sync.

    Manages a shared httpx client for connection reuse and caches the app
    access token, broadcaster ids and game names.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
    ):
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret

        # Shared HTTP client, reuses TCP connections across requests
        self._http = httpx.AsyncClient(timeout=timeout)

        self._token: str | None = None
        self._token_lock = asyncio.Lock()

        self._user_cache: TTLCache = TTLCache(maxsize=32, ttl=3600)
        self._game_cache: TTLCache = TTLCache(maxsize=2048, ttl=86400)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Token management
    # ------------------------------------------------------------------

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def _fetch_token(self) -> str:
        response = await self._http.post(
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
        )
        if response.status_code != 200:
            raise AuthError(
                f"App token request failed: {response.status_code}",
                status_code=response.status_code,
            )

        token = response.json().get("access_token")
        if not token:
            raise AuthError("App token response carried no access_token", status_code=200)

        logger.info("Obtained Twitch app access token")
        return token

    async def ensure_token(self) -> str:
        """Return the cached app token, fetching one if none is held."""
        if self._token:
            return self._token

        async with self._token_lock:
            if self._token is None:
                self._token = await self._fetch_token()
            return self._token

    async def refresh_token(self, stale: str | None = None) -> str:
        """Discard the current token and fetch a new one.

        When *stale* is given and another caller already replaced it, the
        newer token is returned instead of fetching again.
        """
        async with self._token_lock:
            if stale is None or self._token in (None, stale):
                self._token = None
                self._token = await self._fetch_token()
            return self._token

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        response = await self._http.request(
            method,
            f"{HELIX_BASE}/{path}",
            params=params,
            json=json,
            headers=self._headers(token),
        )
        if response.status_code == 401:
            raise UpstreamUnauthorizedError(path)
        if response.is_error and response.status_code not in allow_status:
            raise TwitchAPIError(
                f"Helix {method} /{path} failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Authenticated Helix call with a single retry after a 401.

        The retry reuses the exact same parameters, so a paginated caller
        resumes at the cursor it asked for. A second 401 raises AuthError.
        """
        token = await self.ensure_token()
        try:
            return await self._send(
                method, path, token, params=params, json=json, allow_status=allow_status
            )
        except UpstreamUnauthorizedError:
            logger.warning(f"Helix /{path} returned 401, refreshing app token")

        token = await self.refresh_token(stale=token)
        try:
            return await self._send(
                method, path, token, params=params, json=json, allow_status=allow_status
            )
        except UpstreamUnauthorizedError as e:
            raise AuthError(
                f"Helix /{path} still unauthorized after token refresh", status_code=401
            ) from e

    # ------------------------------------------------------------------
    # Users / streams / games
    # ------------------------------------------------------------------

    async def get_broadcaster_id(self, login: str) -> str | None:
        """Resolve a login to a user id. None when the login is unknown."""
        key = login.lower()
        if key in self._user_cache:
            return self._user_cache[key]

        response = await self._request("GET", "users", params={"login": key})
        users = response.json().get("data", [])
        if not users:
            return None

        user_id = users[0]["id"]
        self._user_cache[key] = user_id
        return user_id

    async def is_live(self, broadcaster_id: str) -> bool:
        response = await self._request(
            "GET", "streams", params={"user_id": broadcaster_id, "type": "live"}
        )
        return bool(response.json().get("data"))

    async def get_game_names(self, game_ids: list[str]) -> dict[str, str]:
        """Map game ids to names. Unknown or empty ids are left out."""
        wanted = {gid for gid in game_ids if gid}
        missing = [gid for gid in wanted if gid not in self._game_cache]

        for start in range(0, len(missing), MAX_PAGE_SIZE):
            chunk = missing[start : start + MAX_PAGE_SIZE]
            response = await self._request("GET", "games", params={"id": chunk})
            for game in response.json().get("data", []):
                self._game_cache[game["id"]] = game["name"]

        return {gid: self._game_cache[gid] for gid in wanted if gid in self._game_cache}

    # ------------------------------------------------------------------
    # Clips
    # ------------------------------------------------------------------

    async def get_clips(
        self,
        broadcaster_id: str,
        first: int = 20,
        *,
        started_at: str | None = None,
        after: str | None = None,
    ) -> ClipPage:
        """Fetch one page of a broadcaster's clips."""
        params: dict[str, str | int] = {
            "broadcaster_id": broadcaster_id,
            "first": max(1, min(first, MAX_PAGE_SIZE)),
        }
        if started_at:
            params["started_at"] = started_at
        if after:
            params["after"] = after

        response = await self._request("GET", "clips", params=params)
        body = response.json()
        return ClipPage(
            clips=body.get("data", []),
            cursor=body.get("pagination", {}).get("cursor") or None,
        )

    async def get_clip(self, clip_id: str) -> dict | None:
        response = await self._request("GET", "clips", params={"id": clip_id})
        clips = response.json().get("data", [])
        return clips[0] if clips else None

    # ------------------------------------------------------------------
    # EventSub
    # ------------------------------------------------------------------

    async def subscribe_clip_created(
        self, broadcaster_id: str, callback_url: str, secret: str
    ) -> bool:
        """Register a clip.create webhook subscription.

        Returns True when created, False when Twitch reports it already
        exists (409), which is not treated as an error.
        """
        response = await self._request(
            "POST",
            "eventsub/subscriptions",
            json={
                "type": "clip.create",
                "version": "1",
                "condition": {"broadcaster_user_id": broadcaster_id},
                "transport": {
                    "method": "webhook",
                    "callback": callback_url,
                    "secret": secret,
                },
            },
            allow_status=(409,),
        )
        if response.status_code == 409:
            logger.info(f"EventSub clip.create already subscribed for {broadcaster_id}")
            return False

        logger.info(f"EventSub clip.create subscribed for {broadcaster_id}")
        return True
