"""Emergency alert router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import (
    Principal,
    get_current_user,
    get_db,
    get_email_dispatcher,
    get_realtime_hub,
    require_owner,
)
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.emergency import (
    AlertIdRequest,
    CreateEmergencyAlertRequest,
    CreateEmergencyAlertResponse,
    EmergencyAlert,
    ListActiveAlertsRequest,
)
from ..services.emergency_service import EmergencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/emergency", tags=["emergency"])

DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
OWNER_DEPENDENCY = Depends(require_owner)
HUB_DEPENDENCY = Depends(get_realtime_hub)
EMAIL_DEPENDENCY = Depends(get_email_dispatcher)


@router.post("/create", response_model=CreateEmergencyAlertResponse, status_code=201)
async def create_emergency_alert(
    request: CreateEmergencyAlertRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
    hub=HUB_DEPENDENCY,
    email_dispatcher=EMAIL_DEPENDENCY,
) -> JSONResponse:
    """
    Raise an alert for a tour.

    Every traveller whose departure has not ended gets an inbox
    notification, a real-time push and an email. The response reports how
    many were reached on each channel.
    """
    try:
        alert, result = await EmergencyService(db, hub, email_dispatcher).create_alert(request)
        response = CreateEmergencyAlertResponse(
            alert=EmergencyAlert.model_validate(alert),
            notified=result.notified,
            pushed=result.pushed,
            emailed=result.emailed,
        )
        return JSONResponse(status_code=201, content=response.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in emergency alert creation",
            extra={"tour_id": str(request.tour_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/deactivate", response_model=EmergencyAlert)
async def deactivate_emergency_alert(
    request: AlertIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
) -> JSONResponse:
    try:
        alert = await EmergencyService(db).deactivate_alert(request.alert_id)
        return JSONResponse(
            status_code=200,
            content=EmergencyAlert.model_validate(alert).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in emergency alert deactivation",
            extra={"alert_id": str(request.alert_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/list-active", response_model=list[EmergencyAlert])
async def list_active_alerts(
    request: ListActiveAlertsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """Active alerts for a tour, newest first."""
    try:
        alerts = await EmergencyService(db).list_active(request.tour_id)
        return JSONResponse(
            status_code=200,
            content=[EmergencyAlert.model_validate(a).model_dump(mode="json") for a in alerts]
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error listing emergency alerts",
            extra={"tour_id": str(request.tour_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
