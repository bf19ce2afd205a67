"""Booking router for booking operations."""

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
from ..schemas.booking import (
    AdminListBookingsRequest,
    Booking,
    BookingIdRequest,
    BookingListResponse,
    CreateBookingRequest,
    ListBookingsRequest,
    UpdateBookingStatusRequest,
)
from ..schemas.common import PageInfo
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
OWNER_DEPENDENCY = Depends(require_owner)
HUB_DEPENDENCY = Depends(get_realtime_hub)
EMAIL_DEPENDENCY = Depends(get_email_dispatcher)


def _booking_response(booking, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Booking.from_model(booking).model_dump(mode="json")
    )


def _list_response(bookings, total: int, page: int, limit: int) -> JSONResponse:
    response = BookingListResponse(
        items=[Booking.from_model(b) for b in bookings],
        page_info=PageInfo.build(page, limit, total),
    )
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))


def _unexpected(operation: str, error: Exception, **context) -> InternalServerError:
    logger.error(
        f"Unexpected error in {operation}",
        extra={**context, "error": str(error)},
        exc_info=True
    )
    return InternalServerError()


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """
    Book seats on a departure.

    The booking starts PENDING; seats are taken immediately.
    """
    try:
        booking = await BookingService(db).create_booking(principal, request)
        return _booking_response(booking, status_code=201)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected(
            "booking creation", e,
            departure_id=str(request.departure_id),
            traveller_count=request.traveller_count,
        ) from e


@router.post("/list", response_model=BookingListResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """List the caller's bookings, newest first."""
    try:
        bookings, total = await BookingService(db).list_bookings(
            principal, request.page, request.limit, request.status
        )
        return _list_response(bookings, total, request.page, request.limit)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking list", e, user_id=str(principal.user_id)) from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """Get one of the caller's bookings."""
    try:
        booking = await BookingService(db).get_booking(request.booking_id, principal)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking retrieval", e, booking_id=str(request.booking_id)) from e


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: BookingIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    """
    Cancel a booking and release its seats.

    Rejected once the departure has started.
    """
    try:
        booking = await BookingService(db).cancel_booking(request.booking_id, principal)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking cancellation", e, booking_id=str(request.booking_id)) from e


@router.post("/admin-list", response_model=BookingListResponse)
async def admin_list_bookings(
    request: AdminListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
) -> JSONResponse:
    """List all bookings (owner only)."""
    try:
        bookings, total = await BookingService(db).list_all_bookings(
            request.page, request.limit, request.status, request.tour_id
        )
        return _list_response(bookings, total, request.page, request.limit)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("admin booking list", e) from e


@router.post("/update-status", response_model=Booking)
async def update_booking_status(
    request: UpdateBookingStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = OWNER_DEPENDENCY,
    hub=HUB_DEPENDENCY,
    email_dispatcher=EMAIL_DEPENDENCY,
) -> JSONResponse:
    """Confirm or cancel a booking (owner only) and notify the traveller."""
    try:
        booking = await BookingService(db, hub, email_dispatcher).update_booking_status(
            request.booking_id, request.status
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected(
            "booking status update", e,
            booking_id=str(request.booking_id),
            status=request.status,
        ) from e
