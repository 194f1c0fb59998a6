"""
MarketSync Backend — Health Check Route
=========================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Pings the configured store. The service is only "healthy" when the
       store answers; otherwise it reports "unhealthy" with HTTP 503 so the
       balancer routes away.
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from marketsync import __version__
from marketsync.dependencies import ServiceContainer, get_container
from marketsync.schemas.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Store unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(container: ServiceContainer = Depends(get_container)):
    try:
        reachable = await container.store.ping()
    except Exception as e:
        logger.warning("Health check: store ping raised: %s", str(e))
        reachable = False

    body = HealthResponse(
        status="healthy" if reachable else "unhealthy",
        version=__version__,
        store=container.backend,
        store_status="reachable" if reachable else "unreachable",
        uptime_seconds=round(time.time() - _start_time, 2),
        checked_at=datetime.now(timezone.utc),
    )
    if not reachable:
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body
