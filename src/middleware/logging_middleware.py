"""
Logging Middleware
Logs every HTTP request with its status and duration
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logger import setup_logger

logger = setup_logger()


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging; 4xx and 5xx responses are logged as warnings"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception:
            duration = time.time() - start_time
            logger.exception(
                f"{request.method} {request.url.path} | Client: {client} | "
                f"Failed after {duration:.3f}s"
            )
            raise

        duration = time.time() - start_time
        response.headers["X-Process-Time"] = f"{duration:.3f}"

        message = (
            f"{request.method} {request.url.path} | Client: {client} | "
            f"Status: {response.status_code} | Duration: {duration:.3f}s"
        )
        if response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        return response
