from fastapi import APIRouter, Depends

from sqlalchemy.ext.asyncio import AsyncSession

from vibes.clients.database_client import DatabaseClient

from vibes.dependencies.validate_session import validate_session

from vibes.models.postgresql import User
from vibes.models.schemas.user.sharing_request import SharingRequest

from vibes.utils.routes.user_utils import (
    apply_sharing,
    build_spotify_authorize_url,
    build_user_status,
    disconnect_spotify,
    rotate_extension_token,
)

api_router = APIRouter()
database_client = DatabaseClient()

@api_router.get("/user/status")
async def get_user_status(user: User = Depends(validate_session)):
    return build_user_status(user)


@api_router.post("/user/sharing")
async def set_sharing(sharing_request: SharingRequest, user: User = Depends(validate_session), session: AsyncSession = Depends(database_client.get_session)):
    async with session.begin():
        await apply_sharing(session, user, sharing_request.is_sharing)

    return { "ok": True, "isSharing": user.is_sharing }


@api_router.post("/user/disconnect")
async def disconnect(user: User = Depends(validate_session), session: AsyncSession = Depends(database_client.get_session)):
    async with session.begin():
        await disconnect_spotify(session, user)

    return { "ok": True }


@api_router.post("/user/extension-token")
async def create_extension_token(user: User = Depends(validate_session), session: AsyncSession = Depends(database_client.get_session)):
    async with session.begin():
        token = await rotate_extension_token(session, user)

    return { "ok": True, "token": token }


@api_router.get("/spotify/connect-url")
async def get_spotify_connect_url(user: User = Depends(validate_session)):
    return { "url": build_spotify_authorize_url(user.user_id) }
