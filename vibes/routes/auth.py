from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from sqlalchemy.ext.asyncio import AsyncSession

from vibes.config.logger import logger
from vibes.config.settings import get_settings
from vibes.clients.database_client import DatabaseClient

from vibes.dependencies.rate_limit import auth_rate_limit
from vibes.dependencies.validate_session import resolve_session_user_id

from vibes.exceptions import UpstreamError
from vibes.models.schemas.auth.oauth_callback_params import OAuthCallbackParams

from vibes.services.postgresql.user_service import UserService
from vibes.services.postgresql.user_session_service import UserSessionService
from vibes.services.postgresql.workspace_service import WorkspaceService
from vibes.services.providers.slack_service import SlackService
from vibes.services.providers.spotify_service import SpotifyService

from vibes.utils.encryption_helper import encrypt_token
from vibes.utils.jwt_helper import SESSION_COOKIE_NAME, SESSION_TTL, create_session_token, decode_session_token
from vibes.utils.routes.slack_utils import CONNECT_STATE_PREFIX
from vibes.utils.routes.user_utils import SPOTIFY_STATE_PREFIX, build_spotify_authorize_url
from vibes.utils.signed_state_helper import create_signed_state, verify_signed_state

INSTALL_STATE = "slack-install"

database_client = DatabaseClient()

user_service = UserService()
user_session_service = UserSessionService()
workspace_service = WorkspaceService()

slack_service = SlackService()
spotify_service = SpotifyService()

auth_router = APIRouter()

def _redirect(path: str, **params):
    query = "&".join(f"{key}={quote(str(value))}" for key, value in params.items())
    url = f"{get_settings().app_url}{path}"
    return RedirectResponse(f"{url}?{query}" if query else url, status_code=302)


def _strip_prefix(payload: str | None, prefix: str):
    if not payload or not payload.startswith(prefix):
        return None
    return payload[len(prefix):] or None


@auth_router.get("/slack", dependencies=[
    Depends(auth_rate_limit)
])
async def slack_oauth(params: OAuthCallbackParams = Depends(), session: AsyncSession = Depends(database_client.get_session)):
    if params.error:
        return _redirect("/", error=params.error)

    if not params.code:
        return RedirectResponse(slack_service.build_authorize_url(create_signed_state(INSTALL_STATE)), status_code=302)

    if verify_signed_state(params.state) != INSTALL_STATE:
        return _redirect("/", error="invalid_state")

    try:
        oauth_response = await slack_service.exchange_code(params.code)
    except UpstreamError as e:
        logger.error(f"Slack code exchange failed: {e.detail}")
        return _redirect("/", error="oauth_failed")

    if not oauth_response.get("ok"):
        return _redirect("/", error=oauth_response.get("error", "oauth_failed"))

    team = oauth_response.get("team") or {}
    authed_user = oauth_response.get("authed_user") or {}
    if not (team.get("id") and authed_user.get("id") and authed_user.get("access_token") and oauth_response.get("access_token")):
        logger.error("Slack code exchange returned an incomplete grant")
        return _redirect("/", error="oauth_failed")

    user_id = authed_user["id"]
    async with session.begin():
        await workspace_service.upsert_workspace(
            session,
            team["id"],
            team.get("name") or team["id"],
            encrypt_token(oauth_response["access_token"]),
            oauth_response.get("bot_user_id"))

        await user_service.upsert_user_from_install(session, user_id, team["id"], encrypt_token(authed_user["access_token"]))
        user_session = await user_session_service.create_user_session(session, user_id)

    logger.info(f"Installed for user {user_id} in workspace {team['id']}")

    session_token = create_session_token(user_id, user_session.user_session_id, user_session.expires_at)

    response = _redirect("/dashboard", installed="true")
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_token,
        max_age=int(SESSION_TTL.total_seconds()),
        httponly=True,
        secure=get_settings().app_url.startswith("https://"),
        samesite="lax")

    return response


@auth_router.get("/spotify/start", dependencies=[
    Depends(auth_rate_limit)
])
async def spotify_start(request: Request, state: str | None = None, session: AsyncSession = Depends(database_client.get_session)):
    # Links posted in Slack carry the user id in a signed state; the dashboard relies on the session
    user_id = _strip_prefix(verify_signed_state(state), CONNECT_STATE_PREFIX) if state else None
    if not user_id:
        user_id = await resolve_session_user_id(request, session)

    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    async with session.begin():
        user = await user_service.get_user_by_user_id(session, user_id)

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return RedirectResponse(build_spotify_authorize_url(user_id), status_code=302)


@auth_router.get("/spotify", dependencies=[
    Depends(auth_rate_limit)
])
async def spotify_oauth_callback(params: OAuthCallbackParams = Depends(), session: AsyncSession = Depends(database_client.get_session)):
    if params.error:
        return _redirect("/dashboard", error=params.error)

    if not params.code or not params.state:
        return _redirect("/dashboard", error="invalid_request")

    user_id = _strip_prefix(verify_signed_state(params.state), SPOTIFY_STATE_PREFIX)
    if not user_id:
        return _redirect("/dashboard", error="invalid_state")

    try:
        spotify_tokens = await spotify_service.exchange_code(params.code)
    except UpstreamError as e:
        logger.error(f"Spotify code exchange failed for user {user_id}: {e.detail}")
        return _redirect("/dashboard", error="spotify_exchange_failed")

    refresh_token = spotify_tokens["refresh_token"]
    try:
        async with session.begin():
            await user_service.connect_spotify(
                session,
                user_id,
                encrypt_token(spotify_tokens["access_token"]),
                encrypt_token(refresh_token) if refresh_token else None,
                spotify_tokens["expires_in_seconds"])
    except HTTPException:
        return _redirect("/dashboard", error="user_not_found")

    logger.info(f"Connected Spotify for user {user_id}")

    return _redirect("/dashboard", spotify="connected")


@auth_router.post("/logout")
async def logout(session_payload: dict = Depends(decode_session_token), session: AsyncSession = Depends(database_client.get_session)):
    try:
        async with session.begin():
            await user_session_service.invalidate_user_session(session, session_payload.get("user_session_id"))
    except HTTPException:
        logger.warning("Logout for a session that no longer exists")

    response = JSONResponse({ "message": "Logged out successfully" })
    response.delete_cookie(SESSION_COOKIE_NAME)

    return response
