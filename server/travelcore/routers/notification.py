"""Notification inbox router.

The inbox is the recovery path for anything the real-time channel missed:
every notification pushed over a socket is also stored here first.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Principal, get_current_user, get_db
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import PageInfo
from ..schemas.notification import (
    ListNotificationsRequest,
    MarkAllReadResponse,
    Notification,
    NotificationIdRequest,
    NotificationListResponse,
    UnreadCountResponse,
)
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/notification", tags=["notification"])

DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)


@router.post("/list", response_model=NotificationListResponse)
async def list_notifications(
    request: ListNotificationsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    try:
        items, total, unread = await NotificationService(db).list_notifications(
            principal.user_id, request.page, request.limit, request.unread_only
        )
        response = NotificationListResponse(
            items=[Notification.model_validate(n) for n in items],
            page_info=PageInfo.build(request.page, request.limit, total),
            unread_count=unread,
        )
        return JSONResponse(status_code=200, content=response.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error listing notifications",
            extra={"user_id": str(principal.user_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/read", response_model=Notification)
async def mark_notification_read(
    request: NotificationIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    try:
        notification = await NotificationService(db).mark_as_read(
            request.notification_id, principal.user_id
        )
        return JSONResponse(
            status_code=200,
            content=Notification.model_validate(notification).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error marking notification read",
            extra={"notification_id": str(request.notification_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    try:
        updated = await NotificationService(db).mark_all_as_read(principal.user_id)
        return JSONResponse(
            status_code=200,
            content=MarkAllReadResponse(updated=updated).model_dump()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error marking all notifications read",
            extra={"user_id": str(principal.user_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: AsyncSession = DB_DEPENDENCY,
    principal: Principal = USER_DEPENDENCY,
) -> JSONResponse:
    try:
        count = await NotificationService(db).unread_count(principal.user_id)
        return JSONResponse(
            status_code=200,
            content=UnreadCountResponse(unread_count=count).model_dump()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error counting unread notifications",
            extra={"user_id": str(principal.user_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
