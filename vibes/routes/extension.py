from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi_cache.decorator import cache
from pydantic import ValidationError

from sqlalchemy.ext.asyncio import AsyncSession

from vibes.config.logger import logger
from vibes.config.settings import get_settings
from vibes.clients.database_client import DatabaseClient

from vibes.dependencies.rate_limit import extension_status_rate_limit, now_playing_rate_limit
from vibes.dependencies.validate_extension_token import validate_extension_token

from vibes.exceptions import DecryptionError
from vibes.models.postgresql import User
from vibes.models.schemas.extension.now_playing_request import NowPlayingRequest

from vibes.services.postgresql.user_service import UserService
from vibes.services.providers.slack_service import SlackService

LATEST_EXTENSION_VERSION = "1.0.0"

extension_router = APIRouter()
database_client = DatabaseClient()

user_service = UserService()
slack_service = SlackService()

def _describe_validation_error(e: ValidationError) -> str:
    error = e.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"Invalid payload: {location} {error['msg']}" if location else f"Invalid payload: {error['msg']}"


@extension_router.post("/now-playing", dependencies=[
    Depends(now_playing_rate_limit)
])
async def now_playing(request: Request, user: User = Depends(validate_extension_token), session: AsyncSession = Depends(database_client.get_session)):
    if not user.is_sharing:
        return { "ok": True, "message": "Sharing disabled" }

    try:
        now_playing_request = NowPlayingRequest.model_validate_json(await request.body())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_describe_validation_error(e))

    extension_track = now_playing_request.track
    track = extension_track.to_track() if extension_track else None

    # The push result does not change the response; failures are logged by the service
    try:
        await slack_service.set_user_status(user, track, now_playing_request.is_playing)
    except DecryptionError:
        logger.error(f"Stored Slack token for user {user.user_id} could not be decrypted")

    async with session.begin():
        await user_service.update_user(
            session,
            user,
            last_source=extension_track.source if extension_track else None,
            last_track_id=track.track_id if track else None,
            last_track_name=track.title if track else None,
            last_artist_name=track.artist_names if track else None,
            is_currently_playing=now_playing_request.is_playing,
            last_polled_at=datetime.now(timezone.utc))

    return { "ok": True }


@extension_router.get("/status", dependencies=[
    Depends(extension_status_rate_limit)
])
async def extension_status(user: User = Depends(validate_extension_token)):
    return {
        "ok": True,
        "userId": user.user_id,
        "isSharing": user.is_sharing,
        "lastSource": user.last_source,
    }


@extension_router.get("/version")
@cache(expire=300)
async def extension_version():
    app_url = get_settings().app_url
    return {
        "version": LATEST_EXTENSION_VERSION,
        "downloadUrl": f"{app_url}/vibes-extension.zip",
        "firefoxDownloadUrl": f"{app_url}/vibes-extension-firefox.zip",
    }
