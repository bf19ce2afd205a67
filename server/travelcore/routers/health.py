"""Health check router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.database import utcnow
from ..core.dependencies import get_email_dispatcher, get_realtime_hub
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])

HUB_DEPENDENCY = Depends(get_realtime_hub)
EMAIL_DEPENDENCY = Depends(get_email_dispatcher)


@router.post("/ping", response_model=HealthResponse)
async def health_ping(hub=HUB_DEPENDENCY, email_dispatcher=EMAIL_DEPENDENCY) -> JSONResponse:
    """
    Health check endpoint.

    Returns service status, server time and whether the real-time and
    email side channels are available.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        realtime_connections=hub.connection_count,
        email_enabled=email_dispatcher.enabled,
    )

    logger.debug(
        "Health check requested",
        extra={
            "realtime_connections": response_data.realtime_connections,
            "email_enabled": response_data.email_enabled,
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
