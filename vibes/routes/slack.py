import json
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Response

from sqlalchemy.ext.asyncio import AsyncSession

from vibes.config.logger import logger
from vibes.config.settings import get_settings
from vibes.clients.database_client import DatabaseClient

from vibes.dependencies.verify_slack_request import verify_slack_request

from vibes.exceptions import DecryptionError

from vibes.services.postgresql.user_service import UserService
from vibes.services.postgresql.user_session_service import UserSessionService
from vibes.services.postgresql.workspace_service import WorkspaceService
from vibes.services.providers.slack_service import SlackService

from vibes.utils.routes.slack_utils import (
    COMMAND_HELP_TEXT,
    GET_EXTENSION_TOKEN_ACTION,
    PAUSE_SHARING_ACTION,
    RESUME_SHARING_ACTION,
    build_app_home_view,
    build_connect_url,
    build_status_text,
    build_token_modal_view,
    ephemeral,
)
from vibes.utils.routes.user_utils import apply_sharing, disconnect_spotify, rotate_extension_token

slack_router = APIRouter()
database_client = DatabaseClient()

user_service = UserService()
user_session_service = UserSessionService()
workspace_service = WorkspaceService()

slack_service = SlackService()

def _parse_form(raw_body: str) -> dict:
    return { key: values[0] for key, values in parse_qs(raw_body).items() }


def _parse_json(raw: str) -> dict:
    try:
        payload = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    return payload


async def publish_app_home(session: AsyncSession, workspace_id: str, user_id: str):
    async with session.begin():
        workspace = await workspace_service.get_workspace_by_id(session, workspace_id)
        user = await user_service.get_user_by_user_id(session, user_id)

    if not workspace:
        logger.warning(f"App Home opened in unknown workspace {workspace_id}")
        return False

    view = build_app_home_view(user, get_settings().app_url)

    try:
        return await slack_service.publish_app_home(workspace.encrypted_bot_token, user_id, view)
    except DecryptionError:
        logger.error(f"Stored bot token for workspace {workspace_id} could not be decrypted")
        return False


async def revoke_user_tokens(session: AsyncSession, user_ids: list[str]):
    async with session.begin():
        for user_id in user_ids:
            user = await user_service.get_user_by_user_id(session, user_id)
            if not user:
                continue

            # The Slack token is already dead so there is no status to clear
            await user_service.set_sharing(session, user, False)
            await user_session_service.invalidate_all_user_sessions_by_user_id(session, user_id)
            logger.info(f"Slack token revoked for user {user_id}, sharing disabled")


@slack_router.post("/events")
async def slack_events(raw_body: str = Depends(verify_slack_request), session: AsyncSession = Depends(database_client.get_session)):
    payload = _parse_json(raw_body)

    if payload.get("type") == "url_verification":
        return { "challenge": payload.get("challenge") }

    if payload.get("type") != "event_callback":
        return { "ok": True }

    workspace_id = payload.get("team_id")
    event = payload.get("event") or {}
    event_type = event.get("type")

    if event_type == "app_home_opened":
        await publish_app_home(session, workspace_id, event.get("user"))

    elif event_type == "app_uninstalled":
        async with session.begin():
            await workspace_service.delete_workspace(session, workspace_id)
        logger.info(f"App uninstalled from workspace {workspace_id}")

    elif event_type == "tokens_revoked":
        tokens = event.get("tokens") or {}
        if tokens.get("bot"):
            async with session.begin():
                await workspace_service.delete_workspace(session, workspace_id)
            logger.info(f"Bot token revoked for workspace {workspace_id}")
        else:
            await revoke_user_tokens(session, tokens.get("oauth") or [])

    return { "ok": True }


@slack_router.post("/commands")
async def slack_commands(raw_body: str = Depends(verify_slack_request), session: AsyncSession = Depends(database_client.get_session)):
    form = _parse_form(raw_body)
    words = (form.get("text") or "").strip().lower().split()
    subcommand = words[0] if words else "help"
    user_id = form.get("user_id")

    if subcommand == "help":
        return ephemeral(COMMAND_HELP_TEXT)

    async with session.begin():
        user = await user_service.get_user_by_user_id(session, user_id)

    if not user:
        return ephemeral(build_status_text(None))

    if subcommand == "connect":
        return ephemeral(f"<{build_connect_url(user_id, get_settings().app_url)}|Connect your Spotify account>")

    if subcommand == "status":
        return ephemeral(build_status_text(user))

    if subcommand in ("pause", "resume"):
        async with session.begin():
            await apply_sharing(session, user, subcommand == "resume")
        return ephemeral("Sharing resumed." if user.is_sharing else "Sharing paused. Your status has been cleared.")

    if subcommand == "disconnect":
        async with session.begin():
            await disconnect_spotify(session, user)
        return ephemeral("Spotify disconnected and your status has been cleared.")

    if subcommand == "token":
        async with session.begin():
            token = await rotate_extension_token(session, user)
        return ephemeral(f"Your extension token is below. It is shown only once and replaces any earlier token.\n```{token}```")

    return ephemeral(COMMAND_HELP_TEXT)


@slack_router.post("/interactions")
async def slack_interactions(raw_body: str = Depends(verify_slack_request), session: AsyncSession = Depends(database_client.get_session)):
    payload = _parse_json(_parse_form(raw_body).get("payload") or "")

    slack_user = payload.get("user") or {}
    user_id = slack_user.get("id")
    actions = payload.get("actions") or []
    action_id = actions[0].get("action_id") if actions else None

    async with session.begin():
        user = await user_service.get_user_by_user_id(session, user_id)

    if not user:
        logger.warning(f"Interaction {action_id} from unknown user {user_id}")
        return Response(status_code=200)

    if action_id in (PAUSE_SHARING_ACTION, RESUME_SHARING_ACTION):
        async with session.begin():
            await apply_sharing(session, user, action_id == RESUME_SHARING_ACTION)
        await publish_app_home(session, user.workspace_id, user_id)

    elif action_id == GET_EXTENSION_TOKEN_ACTION:
        async with session.begin():
            token = await rotate_extension_token(session, user)
            workspace = await workspace_service.get_workspace_by_id(session, user.workspace_id)

        try:
            await slack_service.open_modal(workspace.encrypted_bot_token, payload.get("trigger_id"), build_token_modal_view(token))
        except DecryptionError:
            logger.error(f"Stored bot token for workspace {user.workspace_id} could not be decrypted")

    return Response(status_code=200)
