"""
Request/response logging middleware
"""

import time
from fastapi import Request

from config import get_logger
from server.metrics import metrics

logger = get_logger(__name__).bind(component="http")

# Scrapers and probes, too noisy to log per request
_QUIET_PATHS = {"/metrics", "/api/health"}


async def log_requests(request: Request, call_next):
    """One log line per request with status and duration"""
    if request.url.path in _QUIET_PATHS:
        return await call_next(request)

    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        metrics.record_error("api", e)
        logger.error(
            "request failed",
            method=request.method,
            path=request.url.path,
            duration=round(time.time() - start_time, 3),
            error=str(e),
        )
        raise

    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration=round(time.time() - start_time, 3),
    )
    return response
