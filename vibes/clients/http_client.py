import httpx

from vibes.config.settings import get_settings

class HTTPClient:
    _client: httpx.AsyncClient | None = None

    def __new__(cls):
        if cls._client is None or cls._client.is_closed:
            cls._client = httpx.AsyncClient(timeout=get_settings().http_timeout_seconds)
        return cls._client
