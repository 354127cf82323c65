from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vibes.clients.database_client import DatabaseClient
from vibes.services.postgresql.user_service import UserService
from vibes.services.postgresql.user_session_service import UserSessionService
from vibes.utils.jwt_helper import decode_session_token

database_client = DatabaseClient()
user_service = UserService()
user_session_service = UserSessionService()

async def resolve_session_user_id(request: Request, session: AsyncSession):
    """Resolve the session token on `request` to a Slack user id, or None."""
    try:
        payload = await decode_session_token(request)
    except HTTPException:
        return None

    async with session.begin():
        user_session = await user_session_service.get_active_user_session(session, payload.get("user_session_id"), payload.get("user_id"))

    if not user_session:
        return None

    return user_session.user_id


async def validate_session(request: Request, session: AsyncSession = Depends(database_client.get_session)):
    user_id = await resolve_session_user_id(request, session)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    async with session.begin():
        user = await user_service.get_user_by_user_id(session, user_id)

    if not user:
        raise HTTPException(status_code=403, detail="User not found, install the Slack app first")

    return user
