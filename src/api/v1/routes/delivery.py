"""Delivery profile API routes: configuration, activity pattern and engagement."""

from fastapi import APIRouter, Depends, Request

from api.dependencies.auth import CurrentUser
from api.v1.dependencies import get_notification_service
from api.v1.schemas.delivery import (
    ActivityPatternRequest,
    ActivityPatternResponse,
    DeliveryConfigRequest,
    DeliveryConfigResponse,
    EngagementResponse,
)
from core.rate_limit import limiter
from domain.services.notification_service import NotificationService

router = APIRouter(prefix="/users/me", tags=["delivery"])


@router.get(
    "/delivery-config",
    response_model=DeliveryConfigResponse,
    summary="Get delivery configuration",
)
@limiter.limit("30/minute")  # type: ignore[untyped-decorator]
async def get_delivery_config(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> DeliveryConfigResponse:
    """Users who never saved a configuration get the defaults."""
    config = await service.get_delivery_config(user.id)
    return DeliveryConfigResponse.from_entity(config)


@router.put(
    "/delivery-config",
    response_model=DeliveryConfigResponse,
    summary="Replace delivery configuration",
    responses={
        400: {"description": "Quiet hours do not wrap midnight"},
    },
)
@limiter.limit("10/minute")  # type: ignore[untyped-decorator]
async def update_delivery_config(
    request: Request,
    body: DeliveryConfigRequest,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> DeliveryConfigResponse:
    config = await service.update_delivery_config(body.to_entity(user.id))
    return DeliveryConfigResponse.from_entity(config)


@router.get(
    "/activity-pattern",
    response_model=ActivityPatternResponse,
    summary="Get activity pattern",
)
@limiter.limit("30/minute")  # type: ignore[untyped-decorator]
async def get_activity_pattern(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> ActivityPatternResponse:
    pattern = await service.get_activity_pattern(user.id)
    return ActivityPatternResponse.from_entity(pattern)


@router.put(
    "/activity-pattern",
    response_model=ActivityPatternResponse,
    summary="Replace activity pattern",
    responses={
        400: {"description": "Invalid hours or unknown time zone"},
    },
)
@limiter.limit("10/minute")  # type: ignore[untyped-decorator]
async def update_activity_pattern(
    request: Request,
    body: ActivityPatternRequest,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> ActivityPatternResponse:
    pattern = await service.update_activity_pattern(body.to_entity(user.id))
    return ActivityPatternResponse.from_entity(pattern)


@router.get(
    "/engagement",
    response_model=EngagementResponse,
    summary="Get engagement metrics",
)
@limiter.limit("30/minute")  # type: ignore[untyped-decorator]
async def get_engagement(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> EngagementResponse:
    """Read metrics and per-channel delivery statistics."""
    metrics, stats = await service.get_engagement(user.id)
    return EngagementResponse.from_entities(metrics, stats)
