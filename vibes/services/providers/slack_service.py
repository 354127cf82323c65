import asyncio
import time
from urllib.parse import urlencode

import httpx

from vibes.clients.http_client import HTTPClient
from vibes.config.logger import logger
from vibes.config.settings import get_settings
from vibes.exceptions import UpstreamError
from vibes.models.postgresql import User
from vibes.models.schemas.playback import Track
from vibes.utils.encryption_helper import decrypt_token
from vibes.utils.http_helpers import RetryConfig, handle_retry

AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"
OAUTH_ACCESS_URL = "https://slack.com/api/oauth.v2.access"
PROFILE_SET_URL = "https://slack.com/api/users.profile.set"
VIEWS_PUBLISH_URL = "https://slack.com/api/views.publish"
VIEWS_OPEN_URL = "https://slack.com/api/views.open"

BOT_SCOPES = ["commands", "chat:write", "users:read"]
USER_SCOPES = ["users.profile:write", "users.profile:read"]

MAX_STATUS_LENGTH = 100
STATUS_EMOJI = ":headphones:"
STATUS_EXPIRATION_SECONDS = 600

def format_status_text(track: Track) -> str:
    full_text = f"{track.title} - {track.artist_names}" if track.artists else track.title
    if len(full_text) <= MAX_STATUS_LENGTH:
        return full_text

    return f"{full_text[:MAX_STATUS_LENGTH - 1]}…"


def build_status_profile(track: Track | None, is_playing: bool, now: float | None = None):
    if track and is_playing:
        now = time.time() if now is None else now
        return {
            "status_text": format_status_text(track),
            "status_emoji": STATUS_EMOJI,
            # Slack drops the status by itself if we stop refreshing it
            "status_expiration": int(now) + STATUS_EXPIRATION_SECONDS,
        }

    return {"status_text": "", "status_emoji": "", "status_expiration": 0}


def is_rate_limited_body(body: dict) -> bool:
    return isinstance(body, dict) and body.get("error") == "ratelimited"


class SlackService:
    _instance = None

    def __new__(cls):
        if not cls._instance:
            cls._instance = super(SlackService, cls).__new__(cls)
            cls._instance._init()
        return cls._instance


    def _init(self):
        self.rate_limit_event = asyncio.Event()
        self.rate_limit_event.set()

        self.retry_config = RetryConfig(
            self.rate_limit_event,
            max_retries=3,
            retry_after_fallback=30,
            validate_rate_limit_body=is_rate_limited_body,
        )

        self.http_client = HTTPClient()


    def build_authorize_url(self, state: str) -> str:
        settings = get_settings()
        params = {
            "client_id": settings.slack_client_id,
            "scope": ",".join(BOT_SCOPES),
            "user_scope": ",".join(USER_SCOPES),
            "redirect_uri": settings.slack_redirect_uri,
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"


    async def exchange_code(self, code: str):
        settings = get_settings()
        data = {
            "client_id": settings.slack_client_id,
            "client_secret": settings.slack_client_secret,
            "code": code,
            "redirect_uri": settings.slack_redirect_uri,
        }

        return await handle_retry(self.retry_config, "POST", OAUTH_ACCESS_URL, data=data)


    async def set_user_status(self, user: User, track: Track | None, is_playing: bool) -> bool:
        """
        Push the status for `track` to the user's Slack profile, or clear it when
        nothing is playing. Provider failures are logged and reported as False so
        callers can apply their own retry policy; a token that fails to decrypt
        still raises.
        """
        user_token = decrypt_token(user.encrypted_slack_token)
        profile = build_status_profile(track, is_playing)

        try:
            response = await self.http_client.post(
                PROFILE_SET_URL,
                headers={"Authorization": f"Bearer {user_token}"},
                json={"profile": profile}
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to set status for user {user.user_id}: {type(e).__name__}")
            return False

        if not isinstance(data, dict):
            data = {}

        if not data.get("ok"):
            logger.error(f"Failed to set status for user {user.user_id}: {data.get('error', response.status_code)}")
            return False

        return True


    async def clear_user_status(self, user: User) -> bool:
        return await self.set_user_status(user, None, False)


    async def _call_bot_api(self, encrypted_bot_token: str, url: str, payload: dict, description: str) -> bool:
        bot_token = decrypt_token(encrypted_bot_token)

        try:
            data = await handle_retry(
                self.retry_config,
                "POST",
                url,
                headers={"Authorization": f"Bearer {bot_token}"},
                json=payload
            )
        except UpstreamError as e:
            logger.error(f"Failed to {description}: {e.detail}")
            return False

        if not isinstance(data, dict):
            data = {}

        if not data.get("ok"):
            logger.error(f"Failed to {description}: {data.get('error')}")
            return False

        return True


    async def publish_app_home(self, encrypted_bot_token: str, user_id: str, view: dict) -> bool:
        return await self._call_bot_api(
            encrypted_bot_token,
            VIEWS_PUBLISH_URL,
            {"user_id": user_id, "view": view},
            f"publish app home for user {user_id}"
        )


    async def open_modal(self, encrypted_bot_token: str, trigger_id: str, view: dict) -> bool:
        return await self._call_bot_api(
            encrypted_bot_token,
            VIEWS_OPEN_URL,
            {"trigger_id": trigger_id, "view": view},
            "open modal"
        )
