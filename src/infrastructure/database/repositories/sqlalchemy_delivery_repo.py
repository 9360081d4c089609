"""SQLAlchemy implementation of the delivery profile repository."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

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
from infrastructure.database.models import (
    DeliveryConfigModel,
    DeliveryStatsModel,
    NotificationMetricsModel,
    UserActivityPatternModel,
)
from infrastructure.database.repositories.sqlalchemy_notification_repo import as_utc


def _quiet_hours(start: int | None, end: int | None) -> QuietHours | None:
    if start is None or end is None:
        return None
    return QuietHours(start=start, end=end)


class SQLAlchemyDeliveryRepository:
    """SQLAlchemy implementation of IDeliveryRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Config ---

    async def get_config(self, user_id: UUID) -> DeliveryConfig:
        """Get the user's delivery configuration, or the default one."""
        model = await self._session.get(DeliveryConfigModel, user_id)
        return self._config_to_entity(model) if model else DeliveryConfig.default(user_id)

    async def save_config(self, config: DeliveryConfig) -> DeliveryConfig:
        """Upsert the user's delivery configuration."""
        model = await self._session.get(DeliveryConfigModel, config.user_id)
        if model is None:
            model = DeliveryConfigModel(user_id=config.user_id)
            self._session.add(model)

        model.preferred_channel = config.preferred_channel.value
        model.quiet_hours_start = config.quiet_hours.start if config.quiet_hours else None
        model.quiet_hours_end = config.quiet_hours.end if config.quiet_hours else None
        model.desktop_available = config.device_availability.desktop
        model.mobile_available = config.device_availability.mobile
        model.channels = {c.value: enabled for c, enabled in config.channels.items()}
        model.updated_at = config.updated_at

        await self._session.flush()
        return config

    # --- Activity pattern ---

    async def get_activity_pattern(self, user_id: UUID) -> UserActivityPattern:
        """Get the user's activity pattern, or the default one."""
        model = await self._session.get(UserActivityPatternModel, user_id)
        if model is None:
            return UserActivityPattern.default(user_id)
        return self._pattern_to_entity(model)

    async def save_activity_pattern(self, pattern: UserActivityPattern) -> UserActivityPattern:
        """Upsert the user's activity pattern."""
        model = await self._session.get(UserActivityPatternModel, pattern.user_id)
        if model is None:
            model = UserActivityPatternModel(user_id=pattern.user_id)
            self._session.add(model)

        model.active_hours = sorted(pattern.active_hours)
        model.preferred_devices = list(pattern.preferred_devices)
        model.time_zone = pattern.time_zone
        model.quiet_hours_start = pattern.quiet_hours.start if pattern.quiet_hours else None
        model.quiet_hours_end = pattern.quiet_hours.end if pattern.quiet_hours else None
        model.device_usage = {
            "mobile": pattern.device_usage.mobile,
            "desktop": pattern.device_usage.desktop,
            "tablet": pattern.device_usage.tablet,
        }

        await self._session.flush()
        return pattern

    # --- Metrics ---

    async def get_metrics(self, user_id: UUID, for_update: bool = False) -> NotificationMetrics:
        """Get the user's metrics, or optimistic defaults."""
        stmt = select(NotificationMetricsModel).where(
            NotificationMetricsModel.user_id == user_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return NotificationMetrics(user_id=user_id)
        return NotificationMetrics(
            user_id=model.user_id,
            read_rate=model.read_rate,
            response_time_ms=model.response_time_ms,
            email_effectiveness=model.email_effectiveness,
            push_effectiveness=model.push_effectiveness,
            updated_at=as_utc(model.updated_at),  # type: ignore[arg-type]
        )

    async def save_metrics(self, metrics: NotificationMetrics) -> NotificationMetrics:
        """Upsert the user's metrics."""
        model = await self._session.get(NotificationMetricsModel, metrics.user_id)
        if model is None:
            model = NotificationMetricsModel(user_id=metrics.user_id)
            self._session.add(model)

        model.read_rate = metrics.read_rate
        model.response_time_ms = metrics.response_time_ms
        model.email_effectiveness = metrics.email_effectiveness
        model.push_effectiveness = metrics.push_effectiveness
        model.updated_at = metrics.updated_at

        await self._session.flush()
        return metrics

    # --- Channel stats ---

    async def get_stats(
        self, user_id: UUID, channel: Channel, for_update: bool = False
    ) -> DeliveryStats | None:
        """Get stats for one channel, or None if it was never used."""
        stmt = select(DeliveryStatsModel).where(
            DeliveryStatsModel.user_id == user_id,
            DeliveryStatsModel.channel == channel.value,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._stats_to_entity(model) if model else None

    async def list_stats(self, user_id: UUID) -> list[DeliveryStats]:
        """Get stats for every channel the user has history on."""
        stmt = (
            select(DeliveryStatsModel)
            .where(DeliveryStatsModel.user_id == user_id)
            .order_by(DeliveryStatsModel.channel)
        )
        result = await self._session.execute(stmt)
        return [self._stats_to_entity(m) for m in result.scalars()]

    async def save_stats(self, stats: DeliveryStats) -> DeliveryStats:
        """Upsert stats for one channel."""
        stmt = select(DeliveryStatsModel).where(
            DeliveryStatsModel.user_id == stats.user_id,
            DeliveryStatsModel.channel == stats.channel.value,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            model = DeliveryStatsModel(user_id=stats.user_id, channel=stats.channel.value)
            self._session.add(model)

        model.delivery_rate = stats.delivery_rate
        model.response_rate = stats.response_rate
        model.engagement_score = stats.engagement_score
        model.failure_count = stats.failure_count
        model.avg_response_time_ms = stats.avg_response_time_ms
        model.updated_at = stats.updated_at

        await self._session.flush()
        return stats

    # --- Conversion methods ---

    def _config_to_entity(self, model: DeliveryConfigModel) -> DeliveryConfig:
        """Convert DeliveryConfigModel to domain entity."""
        return DeliveryConfig(
            user_id=model.user_id,
            preferred_channel=Channel(model.preferred_channel),
            quiet_hours=_quiet_hours(model.quiet_hours_start, model.quiet_hours_end),
            device_availability=DeviceAvailability(
                desktop=model.desktop_available, mobile=model.mobile_available
            ),
            channels={Channel(k): bool(v) for k, v in (model.channels or {}).items()},
            updated_at=as_utc(model.updated_at),  # type: ignore[arg-type]
        )

    def _pattern_to_entity(self, model: UserActivityPatternModel) -> UserActivityPattern:
        """Convert UserActivityPatternModel to domain entity."""
        usage = model.device_usage or {}
        return UserActivityPattern(
            user_id=model.user_id,
            active_hours=frozenset(model.active_hours or []),
            preferred_devices=list(model.preferred_devices or []),
            time_zone=model.time_zone,
            quiet_hours=_quiet_hours(model.quiet_hours_start, model.quiet_hours_end),
            device_usage=DeviceUsage(
                mobile=usage.get("mobile", 0.5),
                desktop=usage.get("desktop", 0.5),
                tablet=usage.get("tablet", 0.0),
            ),
        )

    def _stats_to_entity(self, model: DeliveryStatsModel) -> DeliveryStats:
        """Convert DeliveryStatsModel to domain entity."""
        return DeliveryStats(
            user_id=model.user_id,
            channel=Channel(model.channel),
            delivery_rate=model.delivery_rate,
            response_rate=model.response_rate,
            engagement_score=model.engagement_score,
            failure_count=model.failure_count,
            avg_response_time_ms=model.avg_response_time_ms,
            updated_at=as_utc(model.updated_at),  # type: ignore[arg-type]
        )
