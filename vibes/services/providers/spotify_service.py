import asyncio
from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError
from sqlalchemy.orm.attributes import set_committed_value

from vibes.clients.database_client import DatabaseClient
from vibes.clients.http_client import HTTPClient
from vibes.config.logger import logger
from vibes.config.settings import get_settings
from vibes.exceptions import SpotifyFatalError, SpotifyRetryableError
from vibes.models.postgresql import User
from vibes.models.schemas.playback import NO_ACTIVE_DEVICE, PlaybackState, SpotifyPlayerResponse
from vibes.services.postgresql.user_service import UserService
from vibes.utils.encryption_helper import decrypt_token, encrypt_token
from vibes.utils.http_helpers import RetryConfig, handle_retry

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
PLAYER_URL = "https://api.spotify.com/v1/me/player"

SCOPES = ["user-read-playback-state", "user-read-currently-playing"]
TOKEN_FIELDS = ("encrypted_spotify_access_token", "encrypted_spotify_refresh_token", "spotify_expires_at")

def classify_error_status(status_code: int):
    if status_code == 429 or status_code >= 500:
        return SpotifyRetryableError
    return SpotifyFatalError


class SpotifyService:
    _instance = None

    def __new__(cls):
        if not cls._instance:
            cls._instance = super(SpotifyService, cls).__new__(cls)
            cls._instance._init()
        return cls._instance


    def _init(self):
        self.rate_limit_event = asyncio.Event()
        self.rate_limit_event.set()

        self.retry_config = RetryConfig(
            self.rate_limit_event,
            max_retries=3,
            retry_after_fallback=30,
        )

        self.http_client = HTTPClient()
        self.database_client = DatabaseClient()
        self.user_service = UserService()


    def _client_auth(self):
        settings = get_settings()
        return (settings.spotify_client_id, settings.spotify_client_secret)


    def build_authorize_url(self, state: str) -> str:
        settings = get_settings()
        params = {
            "client_id": settings.spotify_client_id,
            "response_type": "code",
            "redirect_uri": settings.spotify_callback_uri,
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"


    async def exchange_code(self, auth_code: str):
        data = {
            "grant_type": "authorization_code",
            "code": auth_code,
            "redirect_uri": get_settings().spotify_callback_uri
        }

        oauth_token_response = await handle_retry(
            self.retry_config,
            "POST",
            TOKEN_URL,
            data=data,
            auth=self._client_auth()
        )

        return {
            "access_token": oauth_token_response["access_token"],
            "refresh_token": oauth_token_response.get("refresh_token"),
            "expires_in_seconds": oauth_token_response["expires_in"]
        }


    async def refresh_token(self, user: User) -> bool:
        """
        Trade the stored refresh token for a new access token and persist it on `user`.

        The new pair is committed in its own transaction, independent of any transaction
        the caller has open.

        Spotify only sometimes rotates the refresh token, so the stored one is replaced
        only when the response carries a new one. Returns False instead of raising when
        the exchange fails; the caller decides what a missing token means.
        """
        if not user.encrypted_spotify_refresh_token:
            logger.warning(f"No Spotify refresh token for user {user.user_id}")
            return False

        refresh_token = decrypt_token(user.encrypted_spotify_refresh_token)

        try:
            response = await self.http_client.post(
                TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                auth=self._client_auth()
            )
        except httpx.HTTPError as e:
            logger.warning(f"Spotify token refresh for user {user.user_id} failed with {type(e).__name__}")
            return False

        if response.status_code != 200:
            logger.warning(f"Spotify token refresh for user {user.user_id} returned {response.status_code}")
            return False

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
            expires_in_seconds = int(token_data["expires_in"])
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Spotify token refresh for user {user.user_id} returned an unexpected body")
            return False

        new_refresh_token = token_data.get("refresh_token")

        async with self.database_client.session() as token_session:
            async with token_session.begin():
                stored_user = await self.user_service.get_user_by_user_id(token_session, user.user_id)
                if not stored_user:
                    logger.warning(f"User {user.user_id} disappeared before the Spotify token refresh was stored")
                    return False

                await self.user_service.set_spotify_tokens(
                    token_session,
                    stored_user,
                    encrypt_token(access_token),
                    expires_in_seconds,
                    encrypt_token(new_refresh_token) if new_refresh_token else None
                )

        for key in TOKEN_FIELDS:
            set_committed_value(user, key, getattr(stored_user, key))

        return True


    async def get_playback_state(self, user: User, refreshed: bool = False) -> PlaybackState | None:
        """
        Fetch what `user` is currently playing.

        Returns `NO_ACTIVE_DEVICE` when Spotify answers 204, and None when the state
        cannot be determined because the access token could not be refreshed. A 401
        triggers at most one refresh and one retry per call. Any other error status
        raises `SpotifyRetryableError` or `SpotifyFatalError`.
        """
        if not user.encrypted_spotify_access_token:
            return None

        if not refreshed and user.spotify_expires_at and user.spotify_expires_at <= datetime.now(timezone.utc):
            if not await self.refresh_token(user):
                return None
            refreshed = True

        access_token = decrypt_token(user.encrypted_spotify_access_token)

        try:
            response = await self.http_client.get(PLAYER_URL, headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as e:
            raise SpotifyRetryableError(None, f"Spotify request for user {user.user_id} failed with {type(e).__name__}") from e

        if response.status_code == 204:
            return NO_ACTIVE_DEVICE

        if response.status_code == 401 and not refreshed:
            if await self.refresh_token(user):
                return await self.get_playback_state(user, refreshed=True)
            return None

        if response.status_code != 200:
            error_class = classify_error_status(response.status_code)
            raise error_class(response.status_code, f"Spotify API error {response.status_code} for user {user.user_id}")

        try:
            return SpotifyPlayerResponse.model_validate(response.json()).to_playback_state()
        except (ValueError, ValidationError) as e:
            raise SpotifyRetryableError(response.status_code, f"Unexpected Spotify player body for user {user.user_id}") from e
