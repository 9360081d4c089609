"""Notification API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from api.dependencies.auth import CurrentUser
from api.v1.dependencies import get_notification_service
from api.v1.schemas.notification import (
    CreateDependencyBlockedRequest,
    CreateDueSoonRequest,
    CreateReminderRequest,
    NotificationListResponse,
    NotificationResponse,
)
from core.rate_limit import limiter
from domain.entities.notification import NotificationStatus, utcnow
from domain.services.notification_service import NotificationService

router = APIRouter(prefix="/users/me/notifications", tags=["notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List own notifications",
    responses={
        200: {"description": "Notifications, newest first"},
    },
)
@limiter.limit("30/minute")  # type: ignore[untyped-decorator]
async def list_notifications(
    request: Request,
    user: CurrentUser,
    status_filter: NotificationStatus | None = Query(
        None, alias="status", description="Filter by lifecycle status"
    ),
    limit: int = Query(50, ge=1, le=200, description="Page size"),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    """List the caller's notifications."""
    notifications = await service.get_notifications(user.id, status=status_filter, limit=limit)
    return NotificationListResponse(
        data=[NotificationResponse.from_entity(n) for n in notifications],
        meta={"count": len(notifications)},
    )


@router.post(
    "/reminders",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a task reminder",
)
@limiter.limit("10/minute")  # type: ignore[untyped-decorator]
async def create_reminder(
    request: Request,
    body: CreateReminderRequest,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    notification = await service.create_reminder(
        user.id,
        body.task_id,
        body.when,
        task_title=body.task_title,
        description=body.description,
        priority=body.priority,
    )
    return NotificationResponse.from_entity(notification)


@router.post(
    "/due-soon",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a due-soon notice",
)
@limiter.limit("10/minute")  # type: ignore[untyped-decorator]
async def create_due_soon(
    request: Request,
    body: CreateDueSoonRequest,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """Scheduled ahead of the due date by the configured lead time."""
    notification = await service.create_due_soon(
        user.id,
        body.task_id,
        body.due_date,
        task_title=body.task_title,
        description=body.description,
        priority=body.priority,
    )
    return NotificationResponse.from_entity(notification)


@router.post(
    "/dependency-blocked",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Notify that a task is blocked",
)
@limiter.limit("10/minute")  # type: ignore[untyped-decorator]
async def create_dependency_blocked(
    request: Request,
    body: CreateDependencyBlockedRequest,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    notification = await service.create_dependency_blocked(
        user.id,
        body.task_id,
        utcnow(),
        task_title=body.task_title,
        description=body.description,
        priority=body.priority,
    )
    return NotificationResponse.from_entity(notification)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark notification as read",
    responses={
        200: {"description": "Notification marked as read"},
        404: {"description": "Notification not found"},
        409: {"description": "Notification has not been sent yet"},
    },
)
@limiter.limit("30/minute")  # type: ignore[untyped-decorator]
async def mark_notification_read(
    request: Request,
    notification_id: UUID,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """Acknowledge a delivered notification."""
    notification = await service.mark_read(notification_id, user.id, utcnow())
    return NotificationResponse.from_entity(notification)
