"""Request logging middleware for the chat API."""

import logging
import re
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000

QUIET_PATHS = ("/health", "/health/ready")

# Conversation and group IDs in chat paths
_ID_SEGMENT = re.compile(r"/(conversations|groups|members)/[^/]+")


def route_template(path: str) -> str:
    """Replace conversation, group and member IDs in a path with {id}.

    Args:
        path: Request path.

    Returns:
        str: Path with IDs collapsed so log lines group by route.
    """
    return _ID_SEGMENT.sub(lambda m: f"/{m.group(1)}/{{id}}", path)


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, route, status and time to first byte for each request.

    Streaming responses are timed until their headers are sent, so the
    event stream logs once when it opens.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start = time.perf_counter()
    response: Response | None = None
    try:
        response = await call_next(request)
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        status_code = response.status_code if response is not None else 500
        route = route_template(request.url.path)
        log_data = {
            "method": request.method,
            "route": route,
            "status_code": status_code,
            "latency_ms": round(elapsed_ms, 2),
        }
        message = f"{request.method} {route} - {status_code} - {elapsed_ms:.2f}ms"

        if request.url.path in QUIET_PATHS:
            logger.debug(message, extra=log_data)
        elif status_code >= 500:
            logger.error(message, extra=log_data)
        elif status_code >= 400 or elapsed_ms > SLOW_REQUEST_THRESHOLD_MS:
            logger.warning(message, extra=log_data)
        else:
            logger.info(message, extra=log_data)
