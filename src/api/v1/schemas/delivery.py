"""Pydantic schemas for delivery profile API."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from domain.entities.delivery import (
    DeliveryConfig,
    DeliveryStats,
    DeviceAvailability,
    DeviceUsage,
    NotificationMetrics,
    QuietHours,
    UserActivityPattern,
)
from domain.entities.notification import Channel


class QuietHoursSchema(BaseModel):
    """Quiet window wrapping midnight; start must be greater than end."""

    start: int = Field(..., ge=0, le=23)
    end: int = Field(..., ge=0, le=23)

    def to_entity(self) -> QuietHours:
        # Raises InvalidDeliveryConfigError when the window does not wrap midnight
        return QuietHours(start=self.start, end=self.end)

    @classmethod
    def from_entity(cls, quiet_hours: QuietHours | None) -> "QuietHoursSchema | None":
        if quiet_hours is None:
            return None
        return cls(start=quiet_hours.start, end=quiet_hours.end)


class DeviceAvailabilitySchema(BaseModel):
    desktop: bool = True
    mobile: bool = True


class DeliveryConfigRequest(BaseModel):
    """Replace the caller's delivery configuration."""

    preferred_channel: Literal["email", "push", "both"] = "both"
    quiet_hours: QuietHoursSchema | None = None
    device_availability: DeviceAvailabilitySchema = Field(
        default_factory=DeviceAvailabilitySchema
    )
    channels: dict[Literal["email", "push", "in_app"], bool] = Field(default_factory=dict)

    def to_entity(self, user_id: UUID) -> DeliveryConfig:
        return DeliveryConfig(
            user_id=user_id,
            preferred_channel=Channel(self.preferred_channel),
            quiet_hours=self.quiet_hours.to_entity() if self.quiet_hours else None,
            device_availability=DeviceAvailability(
                desktop=self.device_availability.desktop,
                mobile=self.device_availability.mobile,
            ),
            channels={Channel(k): v for k, v in self.channels.items()},
        )


class DeliveryConfigResponse(BaseModel):
    preferred_channel: str
    quiet_hours: QuietHoursSchema | None = None
    device_availability: DeviceAvailabilitySchema
    channels: dict[str, bool]
    enabled_channels: list[str]

    @classmethod
    def from_entity(cls, config: DeliveryConfig) -> "DeliveryConfigResponse":
        return cls(
            preferred_channel=config.preferred_channel.value,
            quiet_hours=QuietHoursSchema.from_entity(config.quiet_hours),
            device_availability=DeviceAvailabilitySchema(
                desktop=config.device_availability.desktop,
                mobile=config.device_availability.mobile,
            ),
            channels={c.value: enabled for c, enabled in config.channels.items()},
            enabled_channels=[c.value for c in config.enabled_channels()],
        )


class DeviceUsageSchema(BaseModel):
    mobile: float = Field(0.5, ge=0.0, le=1.0)
    desktop: float = Field(0.5, ge=0.0, le=1.0)
    tablet: float = Field(0.0, ge=0.0, le=1.0)


class ActivityPatternRequest(BaseModel):
    """Replace the caller's activity pattern."""

    active_hours: list[int] = Field(default_factory=lambda: list(range(9, 18)))
    preferred_devices: list[str] = Field(default_factory=lambda: ["desktop", "mobile"])
    time_zone: str = "UTC"
    quiet_hours: QuietHoursSchema | None = None
    device_usage: DeviceUsageSchema = Field(default_factory=DeviceUsageSchema)

    def to_entity(self, user_id: UUID) -> UserActivityPattern:
        return UserActivityPattern(
            user_id=user_id,
            active_hours=frozenset(self.active_hours),
            preferred_devices=self.preferred_devices,
            time_zone=self.time_zone,
            quiet_hours=self.quiet_hours.to_entity() if self.quiet_hours else None,
            device_usage=DeviceUsage(
                mobile=self.device_usage.mobile,
                desktop=self.device_usage.desktop,
                tablet=self.device_usage.tablet,
            ),
        )


class ActivityPatternResponse(BaseModel):
    active_hours: list[int]
    preferred_devices: list[str]
    time_zone: str
    quiet_hours: QuietHoursSchema | None = None
    device_usage: DeviceUsageSchema

    @classmethod
    def from_entity(cls, pattern: UserActivityPattern) -> "ActivityPatternResponse":
        return cls(
            active_hours=sorted(pattern.active_hours),
            preferred_devices=pattern.preferred_devices,
            time_zone=pattern.time_zone,
            quiet_hours=QuietHoursSchema.from_entity(pattern.quiet_hours),
            device_usage=DeviceUsageSchema(
                mobile=pattern.device_usage.mobile,
                desktop=pattern.device_usage.desktop,
                tablet=pattern.device_usage.tablet,
            ),
        )


class MetricsResponse(BaseModel):
    read_rate: float
    response_time_ms: float
    email_effectiveness: float
    push_effectiveness: float
    updated_at: datetime


class ChannelStatsResponse(BaseModel):
    channel: str
    delivery_rate: float
    response_rate: float
    engagement_score: float
    failure_count: float
    avg_response_time_ms: float
    updated_at: datetime


class EngagementResponse(BaseModel):
    """Aggregate metrics plus per-channel delivery statistics."""

    metrics: MetricsResponse
    channels: list[ChannelStatsResponse]

    @classmethod
    def from_entities(
        cls, metrics: NotificationMetrics, stats: list[DeliveryStats]
    ) -> "EngagementResponse":
        return cls(
            metrics=MetricsResponse(
                read_rate=metrics.read_rate,
                response_time_ms=metrics.response_time_ms,
                email_effectiveness=metrics.email_effectiveness,
                push_effectiveness=metrics.push_effectiveness,
                updated_at=metrics.updated_at,
            ),
            channels=[
                ChannelStatsResponse(
                    channel=s.channel.value,
                    delivery_rate=s.delivery_rate,
                    response_rate=s.response_rate,
                    engagement_score=s.engagement_score,
                    failure_count=s.failure_count,
                    avg_response_time_ms=s.avg_response_time_ms,
                    updated_at=s.updated_at,
                )
                for s in stats
            ],
        )
