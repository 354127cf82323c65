from sqlalchemy.ext.asyncio import AsyncSession

from vibes.config.logger import logger
from vibes.models.postgresql import User
from vibes.services.postgresql.user_service import UserService
from vibes.services.providers.slack_service import SlackService
from vibes.services.providers.spotify_service import SpotifyService
from vibes.utils.encryption_helper import generate_token, hash_token
from vibes.utils.signed_state_helper import create_signed_state

SPOTIFY_STATE_PREFIX = "spotify:"

user_service = UserService()
slack_service = SlackService()
spotify_service = SpotifyService()

async def clear_status_best_effort(user: User):
    try:
        cleared = await slack_service.clear_user_status(user)
    except Exception as e:
        logger.warning(f"Failed to clear status for user {user.user_id}: {type(e).__name__}")
        return False

    return cleared


async def apply_sharing(session: AsyncSession, user: User, is_sharing: bool):
    await user_service.set_sharing(session, user, is_sharing)

    if not is_sharing:
        await clear_status_best_effort(user)

    return user


async def disconnect_spotify(session: AsyncSession, user: User):
    await user_service.disconnect_spotify(session, user)
    await clear_status_best_effort(user)

    return user


async def rotate_extension_token(session: AsyncSession, user: User) -> str:
    """Issue a new extension token. Only its hash is stored, so any earlier token stops working."""
    plain_token = generate_token()
    await user_service.set_extension_token_hash(session, user, hash_token(plain_token))

    return plain_token


def build_user_status(user: User):
    return {
        "isConnected": user.is_spotify_connected,
        "isSharing": user.is_sharing,
        "currentTrack": {
            "name": user.last_track_name,
            "artist": user.last_artist_name or "Unknown Artist",
            "isPlaying": bool(user.is_currently_playing),
        } if user.last_track_name else None,
        "lastSource": user.last_source,
        "lastUpdated": user.last_polled_at.isoformat() if user.last_polled_at else None,
        "hasExtensionToken": user.extension_token_hash is not None,
    }


def build_spotify_authorize_url(user_id: str) -> str:
    return spotify_service.build_authorize_url(create_signed_state(f"{SPOTIFY_STATE_PREFIX}{user_id}"))
