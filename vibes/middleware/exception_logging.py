from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vibes.config.logger import logger

class ExceptionLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled {type(e).__name__} on {request.method} {request.url.path}")
            return JSONResponse(status_code=500, content={ "detail": "Internal server error" })
