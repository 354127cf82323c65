import asyncio
from dataclasses import dataclass

from httpx import HTTPStatusError, TimeoutException, TransportError

from vibes.clients.http_client import HTTPClient
from vibes.config.logger import logger
from vibes.exceptions import UpstreamError

SUPPORTED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}

@dataclass
class RetryConfig:
    rate_limit_event: asyncio.Event
    max_retries: int
    retry_after_fallback: int
    validate_rate_limit_body: callable = None


def parse_retry_after(headers, fallback: int) -> int:
    try:
        return max(1, int(headers.get("Retry-After", fallback)))
    except (TypeError, ValueError):
        return fallback


async def handle_rate_limit(rate_limit_event: asyncio.Event, retry_after: int):
    if rate_limit_event.is_set():
        rate_limit_event.clear()
        logger.warning(f"Hit rate limit event, retrying after {retry_after}s")
        await asyncio.sleep(retry_after)
        rate_limit_event.set()
    else:
        await rate_limit_event.wait()


async def handle_retry(
    retry_config: RetryConfig,
    method: str,
    url: str,
    params: dict = None,
    headers: dict = None,
    auth: tuple = None,
    data: dict = None,
    json: dict = None
):
    """
    Send a request and return its decoded JSON body, retrying on 429, 5xx and
    transport errors. Every caller sharing `retry_config.rate_limit_event` waits
    out a rate limit together. Raises `UpstreamError` on any other failure or
    once `max_retries` attempts have been spent.
    """
    method = method.upper()
    if method not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method {method}")

    if method in ("GET", "DELETE") and (data is not None or json is not None):
        raise ValueError(f"{method} requests cannot have a body")

    http_client = HTTPClient()

    for _ in range(retry_config.max_retries):
        await retry_config.rate_limit_event.wait()

        try:
            response = await http_client.request(method, url, params=params, headers=headers, auth=auth, data=data, json=json)
            response.raise_for_status()

            response_json = response.json()

            if retry_config.validate_rate_limit_body and retry_config.validate_rate_limit_body(response_json):
                retry_after = parse_retry_after(response.headers, retry_config.retry_after_fallback)
                await handle_rate_limit(retry_config.rate_limit_event, retry_after)
                continue

            return response_json

        except HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                retry_after = parse_retry_after(e.response.headers, retry_config.retry_after_fallback)
                await handle_rate_limit(retry_config.rate_limit_event, retry_after)
                continue

            if status_code >= 500:
                logger.warning(f"{method} {e.request.url.host} returned {status_code}, retrying")
                continue

            raise UpstreamError(status_code, f"{method} {e.request.url.host} returned {status_code}")
        except (TimeoutException, TransportError) as e:
            logger.warning(f"{method} {url} failed with {type(e).__name__}, retrying")
            continue
        except ValueError:
            raise UpstreamError(502, f"{method} {url} returned a non-JSON body")

    raise UpstreamError(503, "API rate limit exceeded or upstream unavailable")
