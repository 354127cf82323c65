import asyncio
import math
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request

from vibes.config.logger import logger
from vibes.utils.encryption_helper import hash_token

SWEEP_INTERVAL_SECONDS = 5 * 60

@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and forwarded_for.split(",")[0].strip():
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def extension_token_key(request: Request) -> str:
    token = request.headers.get("X-Extension-Token")
    if token:
        return f"token:{hash_token(token)}"
    return f"ip:{client_ip(request)}"


class RateLimiter:
    """
    Fixed-window request counter used as a FastAPI dependency.

    Every limiter registers itself so `sweep_all` can drop expired windows for the
    whole process; the lifespan runs that sweep periodically and it lives as long
    as the process does.
    """

    registry: list["RateLimiter"] = []

    def __init__(self, window_seconds: float, max_requests: int, key_func=client_ip, clock=time.monotonic):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.key_func = key_func
        self.clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        RateLimiter.registry.append(self)


    def hit(self, key: str) -> int | None:
        now = self.clock()

        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= now:
            entry = RateLimitEntry(count=0, reset_at=now + self.window_seconds)
            self._entries[key] = entry

        entry.count += 1

        if entry.count > self.max_requests:
            return max(1, math.ceil(entry.reset_at - now))

        return None


    async def __call__(self, request: Request):
        retry_after = self.hit(self.key_func(request))
        if retry_after is not None:
            raise HTTPException(status_code=429, detail="Too many requests", headers={"Retry-After": str(retry_after)})


    def sweep(self) -> int:
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


    @classmethod
    def sweep_all(cls) -> int:
        return sum(limiter.sweep() for limiter in cls.registry)


async def sweep_rate_limits_forever(interval_seconds: float = SWEEP_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval_seconds)
        removed = RateLimiter.sweep_all()
        if removed:
            logger.debug(f"Swept {removed} expired rate limit windows")


auth_rate_limit = RateLimiter(window_seconds=60, max_requests=20)
extension_status_rate_limit = RateLimiter(window_seconds=60, max_requests=30)
now_playing_rate_limit = RateLimiter(window_seconds=60, max_requests=60, key_func=extension_token_key)
