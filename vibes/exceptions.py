class DecryptionError(Exception):
    """Raised when an encrypted value was tampered with, is malformed, or was sealed with another key."""


class UpstreamError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class SpotifyError(Exception):
    def __init__(self, status_code: int | None, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class SpotifyRetryableError(SpotifyError):
    """Rate limits, 5xx and network failures. Worth trying again on a later tick."""


class SpotifyFatalError(SpotifyError):
    """Statuses that will not fix themselves, such as revoked access or an exhausted app quota."""
