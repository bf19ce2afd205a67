"""Tour router for tour management operations."""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Principal, get_db, require_owner
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.tour import CreateTourRequest, Tour
from ..services.tour_service import TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tour", tags=["tour"])


@router.post("/create", response_model=Tour)
async def create_tour(
    request: CreateTourRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_owner),
) -> JSONResponse:
    """
    Create a new tour.

    Repeating a create with identical content returns the existing tour;
    a different tour on the same slug is a conflict.
    """
    tour_service = TourService(db)

    try:
        existing_tour = await tour_service.get_tour_by_slug(request.slug)
        if (
            existing_tour
            and existing_tour.title == request.title
            and existing_tour.description == request.description
        ):
            logger.info(
                "Tour creation - returning existing tour (idempotent)",
                extra={"tour_id": str(existing_tour.id), "slug": request.slug}
            )
            tour = existing_tour
        else:
            tour = await tour_service.create_tour(request)

        return JSONResponse(
            status_code=200,
            content=Tour.model_validate(tour).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in tour creation",
            extra={"slug": request.slug, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
