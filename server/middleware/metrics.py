"""
Prometheus metrics middleware for API requests

Instruments all API requests with:
- Request count (by endpoint, method, status_code)
- Request duration (by endpoint, method)

Usage:
    from server.middleware.metrics import metrics_middleware
    app.middleware("http")(metrics_middleware)
"""

import time
from fastapi import Request

from server.metrics import metrics

# Path segments that precede an identifier, mapped to their label
_ID_PARENTS = {
    "groups": ":group_id",
    "proposals": ":proposal_id",
    "reading-items": ":reading_item_id",
    "comments": ":comment_id",
    "annotations": ":annotation_id",
    "annotation-replies": ":reply_id",
    "users": ":user_id",
}

# Fixed path segments that can follow an id parent
_ROUTE_WORDS = {"reroll"}


async def metrics_middleware(request: Request, call_next):
    """Record Prometheus metrics for all API requests"""
    start_time = time.time()

    endpoint = _normalize_endpoint(request.url.path)
    method = request.method

    try:
        response = await call_next(request)
    except Exception:
        metrics.api_requests.labels(endpoint=endpoint, method=method, status_code=500).inc()
        metrics.api_request_duration.labels(endpoint=endpoint, method=method).observe(
            time.time() - start_time
        )
        raise

    metrics.api_requests.labels(
        endpoint=endpoint,
        method=method,
        status_code=response.status_code
    ).inc()

    metrics.api_request_duration.labels(
        endpoint=endpoint,
        method=method
    ).observe(time.time() - start_time)

    return response


def _normalize_endpoint(path: str) -> str:
    """Normalize endpoint path for metrics cardinality control

    Converts:
        /api/groups/grp_ab12cd34ef56ab78/vote -> /api/groups/:group_id/vote
        /api/reading-items/rdg_0011/comments -> /api/reading-items/:reading_item_id/comments

    Args:
        path: Raw URL path

    Returns:
        Normalized path with IDs replaced by placeholders
    """
    parts = [part for part in path.split('/') if part]
    normalized_parts = []

    for i, part in enumerate(parts):
        prev_part = parts[i - 1] if i > 0 else None
        if prev_part in _ID_PARENTS and part not in _ROUTE_WORDS:
            normalized_parts.append(_ID_PARENTS[prev_part])
        elif prev_part == "invites" and i > 1:
            normalized_parts.append(":token")
        elif part.isdigit():
            normalized_parts.append(':id')
        else:
            normalized_parts.append(part)

    return '/' + '/'.join(normalized_parts)
