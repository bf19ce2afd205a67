"""Itinerary router: reads for booked travellers, mutations for operators."""

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
from ..schemas.itinerary import (
    CreateItineraryItemRequest,
    GetItineraryRequest,
    ItineraryItem,
    ItineraryItemIdRequest,
    ItineraryResponse,
    UpdateItineraryItemRequest,
)
from ..services.itinerary_service import ItineraryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/itinerary", tags=["itinerary"])

DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
OWNER_DEPENDENCY = Depends(require_owner)
HUB_DEPENDENCY = Depends(get_realtime_hub)
EMAIL_DEPENDENCY = Depends(get_email_dispatcher)


@router.post("/get", response_model=ItineraryResponse)
async def get_itinerary(
    request: GetItineraryRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """Itinerary of a tour the caller has booked (or any tour, for operators)."""
    try:
        items = await ItineraryService(db).get_itinerary(request.tour_id, principal)
        response = ItineraryResponse(
            tour_id=request.tour_id,
            items=[ItineraryItem.model_validate(item) for item in items],
        )
        return JSONResponse(status_code=200, content=response.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in itinerary retrieval",
            extra={"tour_id": str(request.tour_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/create", response_model=ItineraryItem, status_code=201)
async def create_itinerary_item(
    request: CreateItineraryItemRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
    hub=HUB_DEPENDENCY,
) -> JSONResponse:
    try:
        item = await ItineraryService(db, hub).create_item(request)
        return JSONResponse(
            status_code=201,
            content=ItineraryItem.model_validate(item).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in itinerary item creation",
            extra={"tour_id": str(request.tour_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/update", response_model=ItineraryItem)
async def update_itinerary_item(
    request: UpdateItineraryItemRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
    hub=HUB_DEPENDENCY,
    email_dispatcher=EMAIL_DEPENDENCY,
) -> JSONResponse:
    """
    Update an item.

    Broadcasts the change to the tour room and notifies every traveller
    whose departure has not ended.
    """
    try:
        item = await ItineraryService(db, hub, email_dispatcher).update_item(request)
        return JSONResponse(
            status_code=200,
            content=ItineraryItem.model_validate(item).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in itinerary item update",
            extra={"item_id": str(request.item_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/delete", response_model=ItineraryItem)
async def delete_itinerary_item(
    request: ItineraryItemIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
    hub=HUB_DEPENDENCY,
    email_dispatcher=EMAIL_DEPENDENCY,
) -> JSONResponse:
    """Delete an item and return its last state."""
    try:
        payload = await ItineraryService(db, hub, email_dispatcher).delete_item(request.item_id)
        return JSONResponse(status_code=200, content=payload)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in itinerary item deletion",
            extra={"item_id": str(request.item_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
