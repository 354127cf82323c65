from contextlib import asynccontextmanager
import inspect

from vibes.config.logger import logger

async def _invoke(hook, app):
    result = hook(app)
    if inspect.isawaitable(result):
        await result


def create_lifespan(on_startup=None, on_shutdown=None):
    """
    Wrap plain startup and shutdown hooks in a FastAPI lifespan. Hooks receive
    the app and may be sync or async. Shutdown hooks run even when the server
    exits because of an error.
    """
    @asynccontextmanager
    async def lifespan(app):
        logger.info("🚀 Starting up.")
        if on_startup:
            await _invoke(on_startup, app)

        try:
            yield
        finally:
            logger.info("🛑 Shutting down.")
            if on_shutdown:
                await _invoke(on_shutdown, app)

    return lifespan
