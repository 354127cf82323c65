from fastapi import HTTPException, Request

from vibes.config.settings import get_settings
from vibes.utils.signature_helper import verify_slack_signature

async def verify_slack_request(request: Request) -> str:
    """Check the Slack signing headers against the raw body bytes and return the body as text."""
    raw_body = await request.body()

    is_valid = verify_slack_signature(
        get_settings().slack_signing_secret,
        request.headers.get("x-slack-request-timestamp"),
        raw_body,
        request.headers.get("x-slack-signature"),
    )
    if not is_valid:
        raise HTTPException(status_code=401, detail="Invalid signature")

    return raw_body.decode("utf-8", errors="replace")
