"""
Cron API - weekly rollover trigger for an external scheduler

Authenticated by a shared secret, sent either as X-Cron-Secret or as a
bearer token. Without a configured secret the endpoint refuses to run.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from config import get_logger
from server.dependencies import get_services
from server.models.requests import RolloverRequest
from voting.services import Services

logger = get_logger(__name__).bind(component="cron")

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _presented_secret(request: Request) -> Optional[str]:
    header_secret = request.headers.get("x-cron-secret")
    if header_secret:
        return header_secret
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:]
    return None


def require_cron_secret(request: Request) -> None:
    configured = request.app.state.cron_secret
    if not configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret is not configured",
        )
    presented = _presented_secret(request)
    if not presented or not secrets.compare_digest(presented, configured):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/weekly-rollover", dependencies=[Depends(require_cron_secret)])
async def weekly_rollover(
    body: Optional[RolloverRequest] = None,
    services: Services = Depends(get_services),
):
    """Ensure every group (or the given one) has an up-to-date week."""
    group_id = body.group_id if body else None
    report = await services.lifecycle.run_weekly_rollover(group_id)
    logger.info("cron rollover", group_id=group_id, processed=report.processed, failed=report.failed)
    return report.to_dict()
