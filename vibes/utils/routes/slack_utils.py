from vibes.models.postgresql import User
from vibes.utils.signed_state_helper import create_signed_state

PAUSE_SHARING_ACTION = "pause_sharing"
RESUME_SHARING_ACTION = "resume_sharing"
GET_EXTENSION_TOKEN_ACTION = "get_extension_token"
CONNECT_SPOTIFY_ACTION = "connect_spotify"
INSTALL_ACTION = "install"

CONNECT_STATE_PREFIX = "connect:"

COMMAND_HELP_TEXT = "\n".join([
    "*Vibes commands*",
    "`/vibes connect` - link your Spotify account",
    "`/vibes pause` - stop sharing what you are listening to",
    "`/vibes resume` - start sharing again",
    "`/vibes status` - show what Vibes is sharing right now",
    "`/vibes token` - get a token for the browser extension",
    "`/vibes disconnect` - unlink Spotify and clear your status",
])

def _section(text: str):
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _button(text: str, action_id: str, url: str = None, style: str = None):
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
    }
    if url:
        button["url"] = url
    if style:
        button["style"] = style
    return button


def build_connect_url(user_id: str, app_url: str) -> str:
    """Link that starts the Spotify connect flow for `user_id` without a browser session."""
    state = create_signed_state(f"{CONNECT_STATE_PREFIX}{user_id}")
    return f"{app_url}/auth/spotify/start?state={state}"


def describe_now_playing(user: User) -> str:
    if not user.last_track_name:
        return "Nothing playing right now."

    artist = user.last_artist_name or "Unknown Artist"
    state = "Now playing" if user.is_currently_playing else "Paused"
    return f"{state}: *{user.last_track_name}* by {artist}"


def build_app_home_view(user: User | None, app_url: str):
    """
    Build the App Home tab for `user`. A missing user has not authorised the
    app yet; otherwise the view depends on whether Spotify is connected and
    whether sharing is on.
    """
    blocks = [_section(":headphones: *Vibes* shares what you are listening to as your Slack status.")]

    if user is None:
        blocks.append(_section("Authorise Vibes to update your Slack status to get started."))
        blocks.append({
            "type": "actions",
            "elements": [_button("Add to Slack", INSTALL_ACTION, url=f"{app_url}/auth/slack", style="primary")],
        })
        return {"type": "home", "blocks": blocks}

    if not user.is_spotify_connected:
        blocks.append(_section("Connect Spotify to start sharing, or use the browser extension for YouTube Music."))
        blocks.append({
            "type": "actions",
            "elements": [
                _button("Connect Spotify", CONNECT_SPOTIFY_ACTION, url=build_connect_url(user.user_id, app_url), style="primary"),
                _button("Get Extension Token", GET_EXTENSION_TOKEN_ACTION),
            ],
        })
        return {"type": "home", "blocks": blocks}

    if user.is_sharing:
        blocks.append(_section(f":large_green_circle: Sharing is on.\n{describe_now_playing(user)}"))
        toggle = _button("Pause Sharing", PAUSE_SHARING_ACTION, style="danger")
    else:
        blocks.append(_section(":white_circle: Sharing is paused. Your status is not being updated."))
        toggle = _button("Resume Sharing", RESUME_SHARING_ACTION, style="primary")

    blocks.append({"type": "actions", "elements": [toggle, _button("Get Extension Token", GET_EXTENSION_TOKEN_ACTION)]})
    blocks.append({
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": f"Manage your connection at {app_url}/dashboard"}],
    })

    return {"type": "home", "blocks": blocks}


def build_token_modal_view(token: str):
    return {
        "type": "modal",
        "title": {"type": "plain_text", "text": "Extension Token"},
        "close": {"type": "plain_text", "text": "Done"},
        "blocks": [
            _section("Paste this token into the Vibes browser extension. It is shown only once and replaces any earlier token."),
            _section(f"```{token}```"),
        ],
    }


def build_status_text(user: User | None) -> str:
    if user is None:
        return "You have not installed Vibes yet. Add it to Slack first."

    connection = "connected" if user.is_spotify_connected else "not connected"
    sharing = "on" if user.is_sharing else "paused"
    return f"Spotify is {connection} and sharing is {sharing}.\n{describe_now_playing(user)}"


def ephemeral(text: str):
    return {"response_type": "ephemeral", "text": text}
