from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vibes.clients.database_client import DatabaseClient
from vibes.services.postgresql.user_service import UserService
from vibes.utils.encryption_helper import hash_token

EXTENSION_TOKEN_HEADER = "X-Extension-Token"

database_client = DatabaseClient()
user_service = UserService()

async def validate_extension_token(request: Request, session: AsyncSession = Depends(database_client.get_session)):
    # Missing and unknown tokens get the same response so tokens cannot be probed
    token = request.headers.get(EXTENSION_TOKEN_HEADER)
    if not token:
        raise HTTPException(status_code=401, detail="Invalid token")

    async with session.begin():
        user = await user_service.get_user_by_extension_token_hash(session, hash_token(token))

    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user
