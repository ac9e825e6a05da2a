"""
Monitoring and health check API routes
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response

from config import get_logger
from database.store import Store
from server.dependencies import get_db
from server.metrics import get_metrics_text, metrics

logger = get_logger(__name__).bind(component="monitoring")


router = APIRouter()


@router.get("/")
async def root():
    """API status and info"""
    return {
        "service": "lectio API",
        "status": "running",
        "version": "1.0.0",
        "description": "Weekly group reading votes and discussion",
        "endpoints": {
            "login": "POST /api/auth/login - Find or create account, returns bearer token",
            "groups": "POST /api/groups - Create a group",
            "snapshot": "GET /api/groups/{group_id} - Current week, proposals, votes, reading, history",
            "vote": "POST /api/groups/{group_id}/vote - Cast or change your vote",
            "resolve": "POST /api/groups/{group_id}/resolve - Admin resolve of the current week",
            "comments": "GET/POST /api/reading-items/{reading_item_id}/comments",
            "notifications": "GET /api/notifications",
            "health": "GET /api/health - Health check",
            "metrics": "GET /metrics - Prometheus metrics",
        },
    }


@router.get("/api/health")
async def health_check(db: Store = Depends(get_db)):
    """Health check for load balancers"""
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    try:
        group_ids = await db.groups.get_group_ids()
        health_status["checks"]["database"] = {"status": "healthy", "groups": len(group_ids)}
    except Exception as e:
        metrics.record_error("database", e)
        logger.error("health check failed", error=str(e))
        health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint for scraping"""
    try:
        return Response(content=get_metrics_text(), media_type="text/plain")
    except Exception as e:
        logger.error("prometheus metrics endpoint failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to generate metrics")
