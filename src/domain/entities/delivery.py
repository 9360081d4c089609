"""Delivery profile entities: per-user configuration, activity and statistics."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import InvalidActivityPatternError, InvalidDeliveryConfigError
from domain.entities.notification import Channel, utcnow

DEFAULT_ACTIVE_HOURS = frozenset(range(9, 18))

# Enumeration order used for channel selection tie-breaks.
SELECTABLE_CHANNELS = (Channel.EMAIL, Channel.PUSH, Channel.IN_APP)


def _valid_hour(hour: int) -> bool:
    return isinstance(hour, int) and 0 <= hour <= 23


@dataclass(frozen=True, slots=True)
class QuietHours:
    """Wall-clock window that wraps midnight, e.g. 22:00 -> 08:00.

    ``start`` must be greater than ``end``; containment is
    ``hour >= start or hour < end``.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if not (_valid_hour(self.start) and _valid_hour(self.end)):
            raise InvalidDeliveryConfigError(
                "Quiet hours must be whole hours between 0 and 23",
                details={"start": self.start, "end": self.end},
            )
        if self.start <= self.end:
            raise InvalidDeliveryConfigError(
                "Quiet hours must wrap midnight (start > end)",
                details={"start": self.start, "end": self.end},
            )

    def contains(self, hour: int) -> bool:
        return hour >= self.start or hour < self.end


@dataclass(frozen=True, slots=True)
class DeviceAvailability:
    desktop: bool = True
    mobile: bool = True

    @property
    def any(self) -> bool:
        return self.desktop or self.mobile


@dataclass(frozen=True, slots=True)
class DeviceUsage:
    """Share of recent activity per device class, each in [0, 1]."""

    mobile: float = 0.5
    desktop: float = 0.5
    tablet: float = 0.0


@dataclass
class DeliveryConfig:
    """Domain entity for a user's delivery preferences."""

    user_id: UUID
    preferred_channel: Channel = Channel.BOTH
    quiet_hours: QuietHours | None = None
    device_availability: DeviceAvailability = field(default_factory=DeviceAvailability)
    channels: dict[Channel, bool] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.preferred_channel not in (Channel.EMAIL, Channel.PUSH, Channel.BOTH):
            raise InvalidDeliveryConfigError(
                "Preferred channel must be email, push or both",
                details={"preferred_channel": str(self.preferred_channel)},
            )
        unknown = [c for c in self.channels if c not in SELECTABLE_CHANNELS]
        if unknown:
            raise InvalidDeliveryConfigError(
                "Channel switches only exist for email, push and in_app",
                details={"channels": [str(c) for c in unknown]},
            )

    @classmethod
    def default(cls, user_id: UUID) -> "DeliveryConfig":
        """Configuration used for users who never saved one."""
        return cls(user_id=user_id, quiet_hours=QuietHours(start=22, end=8))

    def enabled_channels(self) -> list[Channel]:
        """Enabled channels in selection order.

        Without explicit switches, the preferred channel decides:
        ``both`` enables email and push.
        """
        if self.channels:
            return [c for c in SELECTABLE_CHANNELS if self.channels.get(c, False)]
        if self.preferred_channel == Channel.BOTH:
            return [Channel.EMAIL, Channel.PUSH]
        return [self.preferred_channel]


@dataclass
class UserActivityPattern:
    """When and where a user tends to be reachable."""

    user_id: UUID
    active_hours: frozenset[int] = DEFAULT_ACTIVE_HOURS
    preferred_devices: list[str] = field(default_factory=lambda: ["desktop", "mobile"])
    time_zone: str = "UTC"
    quiet_hours: QuietHours | None = None
    device_usage: DeviceUsage = field(default_factory=DeviceUsage)

    def __post_init__(self) -> None:
        self.active_hours = frozenset(self.active_hours)
        bad = sorted(h for h in self.active_hours if not _valid_hour(h))
        if bad:
            raise InvalidActivityPatternError(
                "Active hours must be between 0 and 23", details={"active_hours": bad}
            )
        try:
            ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidActivityPatternError(
                f"Unknown time zone: {self.time_zone}",
                details={"time_zone": self.time_zone},
            ) from e

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    @classmethod
    def default(cls, user_id: UUID) -> "UserActivityPattern":
        return cls(user_id=user_id, quiet_hours=QuietHours(start=22, end=8))


@dataclass
class NotificationMetrics:
    """Aggregate read behaviour for one user (fixed-decay moving averages)."""

    user_id: UUID
    read_rate: float = 1.0
    response_time_ms: float = 0.0
    email_effectiveness: float = 1.0
    push_effectiveness: float = 1.0
    updated_at: datetime = field(default_factory=utcnow)

    def effectiveness(self, channel: Channel) -> float:
        if channel == Channel.EMAIL:
            return self.email_effectiveness
        if channel == Channel.PUSH:
            return self.push_effectiveness
        return 0.0


@dataclass
class DeliveryStats:
    """Per-user, per-channel delivery statistics (windowed moving averages)."""

    user_id: UUID
    channel: Channel
    delivery_rate: float = 0.0
    response_rate: float = 0.0
    engagement_score: float = 0.0
    failure_count: float = 0
    avg_response_time_ms: float = 0.0
    updated_at: datetime = field(default_factory=utcnow)


class EngagementType(StrEnum):
    """How the user interacted with a delivered notification."""

    VIEWED = "viewed"
    CLICKED = "clicked"
    RESPONDED = "responded"

    @property
    def weight(self) -> float:
        return {
            EngagementType.VIEWED: 0.3,
            EngagementType.CLICKED: 0.7,
            EngagementType.RESPONDED: 1.0,
        }[self]


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of one delivery attempt on one concrete channel."""

    channel: Channel
    success: bool
    engagement_type: EngagementType | None = None
    response_time_ms: float | None = None
    error: str | None = None
