"""Departure router for departure management operations."""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Principal, get_current_user, get_db, require_owner
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.departure import CreateDepartureRequest, Departure, SearchDeparturesRequest, SearchDeparturesResponse
from ..services.departure_service import DepartureService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/departure", tags=["departure"])


@router.post("/create", response_model=Departure)
async def create_departure(
    request: CreateDepartureRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_owner),
) -> JSONResponse:
    """Schedule a departure with a fixed seat capacity."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.create_departure(request)
        return JSONResponse(
            status_code=200,
            content=Departure.from_model(departure).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure creation",
            extra={"tour_id": str(request.tour_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/search", response_model=SearchDeparturesResponse)
async def search_departures(
    request: SearchDeparturesRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_user),
) -> JSONResponse:
    """Search departures with cursor pagination."""
    departure_service = DepartureService(db)

    try:
        response = await departure_service.search_departures(request)
        return JSONResponse(status_code=200, content=response.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure search",
            extra={"error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
