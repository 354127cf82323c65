import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from vibes.config.logger import logger, correlation_id_ctx

CORRELATION_ID_HEADER = "X-Correlation-ID"

class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)

        # Query strings can carry OAuth codes and signed state, so only the path is logged
        logger.info(f"Request received: {request.method} {request.url.path}")
        response = await call_next(request)

        response.headers[CORRELATION_ID_HEADER] = correlation_id

        return response
