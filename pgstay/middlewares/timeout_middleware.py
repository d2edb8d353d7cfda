import asyncio

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from pgstay.core.MongoORJSONResponse import MongoORJSONResponse
from pgstay.utils.exceptions import ServiceUnavailableError

logger = structlog.get_logger()


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that run longer than `timeout` seconds with a retryable 503."""

    def __init__(self, app: FastAPI, timeout: float):
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                path=request.url.path,
                method=request.method,
                timeout=self.timeout,
            )
            error = ServiceUnavailableError(f"Request timed out after {self.timeout:g}s")
            return MongoORJSONResponse(status_code=error.status_code, content=error.to_dict())
