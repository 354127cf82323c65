import hashlib
import hmac
import time

SLACK_SIGNATURE_VERSION = "v0"
TIMESTAMP_TOLERANCE_SECONDS = 60 * 5

def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes | str) -> str:
    if isinstance(body, str):
        body = body.encode()

    base_string = f"{SLACK_SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(signing_secret.encode(), base_string, hashlib.sha256).hexdigest()
    return f"{SLACK_SIGNATURE_VERSION}={digest}"


def verify_slack_signature(signing_secret: str, timestamp: str | None, body: bytes | str, signature: str | None, now: float | None = None) -> bool:
    if not signature or not timestamp:
        return False

    try:
        request_timestamp = int(timestamp)
    except ValueError:
        return False

    now = time.time() if now is None else now
    if abs(now - request_timestamp) > TIMESTAMP_TOLERANCE_SECONDS:
        return False

    expected = compute_slack_signature(signing_secret, timestamp, body).encode()
    provided = signature.encode()

    # Burn a comparison of equal cost so a length mismatch returns no sooner than a content mismatch
    if len(provided) != len(expected):
        hmac.compare_digest(expected, expected)
        return False

    return hmac.compare_digest(expected, provided)
