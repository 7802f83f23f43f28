import logging
from dataclasses import dataclass

import httpx

from autokudos.config import Settings
from autokudos.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

# Refresh this many seconds before Strava says the token expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class StravaError(Exception):
    pass


class StravaAuthError(StravaError):
    pass


class StravaApiError(StravaError):
    pass


@dataclass(frozen=True)
class FeedEntry:
    activity_id: int
    owner_id: int


class StravaClient:
    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        refresh_token: str = "",
        access_token: str = "",
        api_base: str = "https://www.strava.com/api/v3",
        token_url: str = "https://www.strava.com/api/v3/oauth/token",
        http: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._static_token = access_token
        self._api_base = api_base.rstrip("/")
        self._token_url = token_url
        self._client = http or httpx.AsyncClient(timeout=30.0)
        self._clock = clock or SystemClock()
        self._cached_token: str | None = None
        self._cached_expires_at: float = 0.0

    @classmethod
    def from_settings(cls, s: Settings) -> "StravaClient":
        return cls(
            client_id=s.STRAVA_CLIENT_ID,
            client_secret=s.STRAVA_CLIENT_SECRET,
            refresh_token=s.STRAVA_REFRESH_TOKEN,
            access_token=s.STRAVA_ACCESS_TOKEN,
            api_base=s.STRAVA_API_BASE,
            token_url=s.STRAVA_TOKEN_URL,
        )

    async def get_access_token(self) -> str:
        """Static token if one is configured, otherwise a refresh-token grant."""
        if self._static_token:
            return self._static_token
        now = self._clock.now().timestamp()
        if self._cached_token and now < self._cached_expires_at - TOKEN_EXPIRY_MARGIN_SECONDS:
            return self._cached_token
        if not self._refresh_token:
            raise StravaAuthError("No access token or refresh token configured")

        try:
            response = await self._client.post(
                self._token_url,
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise StravaAuthError(
                f"Token refresh rejected ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise StravaAuthError(f"Token refresh failed: {exc}") from exc

        token = data.get("access_token")
        if not token:
            raise StravaAuthError("Token refresh returned no access_token")
        # Strava rotates refresh tokens; keep whichever it hands back
        self._refresh_token = data.get("refresh_token") or self._refresh_token
        self._cached_token = token
        self._cached_expires_at = float(data.get("expires_at") or 0)
        return token

    async def _request(self, method: str, path: str, token: str) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                f"{self._api_base}{path}",
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            raise StravaApiError(
                f"{method} {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StravaApiError(f"{method} {path} failed: {exc}") from exc

    async def get_related_activity_ids(self, activity_id: int, token: str) -> list[int]:
        """Other athletes' copies of a group activity."""
        response = await self._request("GET", f"/activities/{activity_id}/related", token)
        try:
            return [int(item["id"]) for item in response.json()]
        except (ValueError, KeyError, TypeError) as exc:
            raise StravaApiError(f"Unexpected related payload for {activity_id}: {exc}") from exc

    async def get_following_feed(self, token: str) -> list[FeedEntry]:
        response = await self._request("GET", "/activities/following", token)
        try:
            return [
                FeedEntry(activity_id=int(item["id"]), owner_id=int(item["athlete"]["id"]))
                for item in response.json()
            ]
        except (ValueError, KeyError, TypeError) as exc:
            raise StravaApiError(f"Unexpected feed payload: {exc}") from exc

    async def give_kudos(self, activity_id: int, token: str) -> None:
        await self._request("POST", f"/activities/{activity_id}/kudos", token)

    async def close(self) -> None:
        await self._client.aclose()
