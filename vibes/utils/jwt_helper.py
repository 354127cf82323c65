from datetime import datetime, timedelta, timezone
import jwt

from fastapi import HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from vibes.config.settings import get_settings

ALGORITHM = "HS256"
SESSION_COOKIE_NAME = "vibes_session"
SESSION_TTL = timedelta(days=7)

http_bearer = HTTPBearer(auto_error=False)

def create_session_token(user_id: str, user_session_id: str, expires_at: datetime = None):
    expire = expires_at or datetime.now(timezone.utc) + SESSION_TTL
    return jwt.encode(
        {
            "user_id": user_id,
            "user_session_id": user_session_id,
            "exp": expire
        },
        get_settings().session_secret,
        algorithm=ALGORITHM)


async def decode_session_token(request: Request):
    authorisation: HTTPAuthorizationCredentials = await http_bearer(request)
    token = authorisation.credentials if authorisation else request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = jwt.decode(token, get_settings().session_secret, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return payload
