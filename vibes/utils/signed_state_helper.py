"""
HMAC-signed, time-bounded state tokens.

These carry an opaque string (a CSRF nonce or a Slack user id) across OAuth
redirects. A token is `<data>.<signature>` where `data` is the unpadded
base64url encoding of `{"payload": ..., "exp": ...}` and `signature` is the hex
HMAC-SHA256 of `data` under the session secret.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time

from vibes.config.settings import get_settings

DEFAULT_STATE_TTL_SECONDS = 600

def _sign(data: str) -> str:
    secret = get_settings().session_secret.encode()
    return hmac.new(secret, data.encode(), hashlib.sha256).hexdigest()


def create_signed_state(payload: str, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS) -> str:
    body = json.dumps({"payload": payload, "exp": int(time.time()) + ttl_seconds}, separators=(",", ":"))
    data = base64.urlsafe_b64encode(body.encode()).decode().rstrip("=")
    return f"{data}.{_sign(data)}"


def verify_signed_state(token: str | None) -> str | None:
    if not token or token.count(".") != 1:
        return None

    data, signature = token.split(".")
    expected_signature = _sign(data)
    if not hmac.compare_digest(expected_signature.encode(), signature.encode()):
        return None

    try:
        padded = data + "=" * (-len(data) % 4)
        body = json.loads(base64.urlsafe_b64decode(padded.encode()))
        payload, expires_at = body["payload"], int(body["exp"])
    except (binascii.Error, ValueError, UnicodeDecodeError, KeyError, TypeError):
        return None

    if not isinstance(payload, str) or int(time.time()) > expires_at:
        return None

    return payload
