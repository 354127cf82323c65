import asyncio
import logging.config

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend

from vibes.config.logger import build_logging_config, logger
from vibes.config.settings import get_settings

from vibes.clients.database_client import DatabaseClient
from vibes.clients.http_client import HTTPClient

from vibes.dependencies.rate_limit import sweep_rate_limits_forever

from vibes.lifecycle.lifespan_manager import create_lifespan

from vibes.middleware.correlation_id import CorrelationIdMiddleware
from vibes.middleware.exception_logging import ExceptionLoggingMiddleware

from vibes.routes.api import api_router
from vibes.routes.auth import auth_router
from vibes.routes.extension import extension_router
from vibes.routes.slack import slack_router

from vibes.services.poller_service import PollerService

settings = get_settings()
logging.config.dictConfig(build_logging_config(settings.log_level))

async def on_startup(app: FastAPI):
    # env.py drives its own event loop, so migrations run off the server loop
    await asyncio.to_thread(DatabaseClient().run_migrations)
    FastAPICache.init(InMemoryBackend())

    PollerService().start()
    app.state.rate_limit_sweeper = asyncio.create_task(sweep_rate_limits_forever(), name="vibes-rate-limit-sweeper")

    logger.info(f"Vibes is listening on {settings.app_url}")


async def on_shutdown(app: FastAPI):
    await PollerService().stop()

    sweeper = getattr(app.state, "rate_limit_sweeper", None)
    if sweeper:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass

    await HTTPClient().aclose()
    await FastAPICache.clear()
    await DatabaseClient().dispose()


lifespan = create_lifespan(on_startup=on_startup, on_shutdown=on_shutdown)

app = FastAPI(title="Vibes", lifespan=lifespan)
app.add_middleware(ExceptionLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth_router, prefix="/auth")
app.include_router(api_router, prefix="/api")
app.include_router(extension_router, prefix="/api/extension")
app.include_router(slack_router, prefix="/slack")

@app.get("/health")
async def health():
    return { "status": "ok" }


def run():
    uvicorn.run("vibes.main:app", host="0.0.0.0", port=settings.port, log_config=build_logging_config(settings.log_level))


if __name__ == "__main__":
    run()
