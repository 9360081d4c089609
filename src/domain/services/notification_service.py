"""Notification service layer: creation, acknowledgement and delivery profiles."""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog

from core.config import settings
from core.exceptions import InvalidNotificationStateError, NotificationNotFoundError
from domain.entities.delivery import (
    DeliveryConfig,
    DeliveryStats,
    EngagementType,
    NotificationMetrics,
    UserActivityPattern,
)
from domain.entities.notification import (
    Notification,
    NotificationStatus,
    NotificationType,
    Priority,
    build_notification_content,
)
from domain.repositories.unit_of_work import IUnitOfWork
from domain.services.channel_selector import ChannelSelector
from domain.services.engagement_tracker import EngagementTracker

logger = structlog.get_logger()


class NotificationService:
    """Service layer used by task subsystems and the HTTP API.

    Creation only inserts pending notifications; all scheduling decisions
    are left to the NotificationScheduler.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        tracker: EngagementTracker | None = None,
        due_soon_lead_hours: int = settings.due_soon_lead_hours,
        metrics_history_days: int = settings.metrics_history_days,
    ) -> None:
        self._uow_factory = uow_factory
        self._tracker = tracker or EngagementTracker()
        self._due_soon_lead = timedelta(hours=due_soon_lead_hours)
        self._history_window = timedelta(days=metrics_history_days)

    # --- Creation ---

    async def create_notification(
        self,
        user_id: UUID,
        task_id: UUID,
        notification_type: NotificationType,
        scheduled_for: datetime,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        """Insert a pending notification."""
        async with self._uow_factory() as uow:
            notification = Notification(
                user_id=user_id,
                task_id=task_id,
                type=notification_type,
                scheduled_for=scheduled_for,
                payload=payload or {},
            )
            created = await uow.notifications.create(notification)
            await uow.commit()

        logger.info(
            "notification_created",
            notification_id=str(created.id),
            user_id=str(user_id),
            type=notification_type.value,
            scheduled_for=scheduled_for.isoformat(),
        )
        return created

    async def create_reminder(
        self,
        user_id: UUID,
        task_id: UUID,
        when: datetime,
        task_title: str | None = None,
        description: str | None = None,
        priority: Priority | str | None = None,
    ) -> Notification:
        return await self.create_notification(
            user_id,
            task_id,
            NotificationType.REMINDER,
            when,
            self._content(NotificationType.REMINDER, task_title, description, priority),
        )

    async def create_dependency_blocked(
        self,
        user_id: UUID,
        task_id: UUID,
        now: datetime,
        task_title: str | None = None,
        description: str | None = None,
        priority: Priority | str | None = None,
    ) -> Notification:
        return await self.create_notification(
            user_id,
            task_id,
            NotificationType.DEPENDENCY_BLOCKED,
            now,
            self._content(NotificationType.DEPENDENCY_BLOCKED, task_title, description, priority),
        )

    async def create_dependency_unblocked(
        self,
        user_id: UUID,
        task_id: UUID,
        now: datetime,
        task_title: str | None = None,
        description: str | None = None,
        priority: Priority | str | None = None,
    ) -> Notification:
        return await self.create_notification(
            user_id,
            task_id,
            NotificationType.DEPENDENCY_UNBLOCKED,
            now,
            self._content(NotificationType.DEPENDENCY_UNBLOCKED, task_title, description, priority),
        )

    async def create_task_completed(
        self,
        user_id: UUID,
        task_id: UUID,
        now: datetime,
        task_title: str | None = None,
        description: str | None = None,
        priority: Priority | str | None = None,
    ) -> Notification:
        return await self.create_notification(
            user_id,
            task_id,
            NotificationType.TASK_COMPLETED,
            now,
            self._content(NotificationType.TASK_COMPLETED, task_title, description, priority),
        )

    async def create_due_soon(
        self,
        user_id: UUID,
        task_id: UUID,
        due_date: datetime,
        task_title: str | None = None,
        description: str | None = None,
        priority: Priority | str | None = None,
    ) -> Notification:
        """Schedule a due-soon notice ahead of the task's due date."""
        return await self.create_notification(
            user_id,
            task_id,
            NotificationType.DUE_SOON,
            due_date - self._due_soon_lead,
            self._content(NotificationType.DUE_SOON, task_title, description, priority),
        )

    def _content(
        self,
        notification_type: NotificationType,
        task_title: str | None,
        description: str | None,
        priority: Priority | str | None,
    ) -> dict[str, Any]:
        if task_title is None:
            return {"priority": Priority.parse(priority).label} if priority else {}
        return build_notification_content(notification_type, task_title, description, priority)

    # --- Reads ---

    async def get_notifications(
        self,
        user_id: UUID,
        status: NotificationStatus | None = None,
        limit: int = 50,
    ) -> list[Notification]:
        """Get a user's notifications, newest first."""
        async with self._uow_factory() as uow:
            return await uow.notifications.get_for_user(user_id, status=status, limit=limit)

    async def get_notification(self, notification_id: UUID, user_id: UUID) -> Notification:
        async with self._uow_factory() as uow:
            notification = await uow.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotificationNotFoundError(str(notification_id))
        return notification

    # --- Acknowledgement ---

    async def mark_read(self, notification_id: UUID, user_id: UUID, now: datetime) -> Notification:
        """Move a sent notification to read and fold the read into engagement.

        Reading an already-read notification is a no-op.

        Raises:
            NotificationNotFoundError: unknown id, or owned by another user
            InvalidNotificationStateError: the notification was never sent
        """
        async with self._uow_factory() as uow:
            notification = await uow.notifications.get(notification_id)
            if notification is None or notification.user_id != user_id:
                raise NotificationNotFoundError(str(notification_id))

            if notification.status == NotificationStatus.READ:
                return notification
            if notification.status != NotificationStatus.SENT:
                raise InvalidNotificationStateError(
                    str(notification_id),
                    notification.status.value,
                    NotificationStatus.READ.value,
                )

            notification.mark_read(now)
            await uow.notifications.save(notification)

            # The send already folded this notification in as unread; rebuild
            # from history so the read replaces that sample
            await uow.delivery.get_metrics(user_id, for_update=True)
            history = await uow.notifications.get_created_since(
                user_id, now - self._history_window
            )
            await uow.delivery.save_metrics(
                self._tracker.metrics_from_history(user_id, history, now)
            )

            response_ms = (notification.read_at - notification.sent_at).total_seconds() * 1000  # type: ignore[operator]
            config = await uow.delivery.get_config(user_id)
            for channel in ChannelSelector.resolve_channels(
                notification.channel, config.preferred_channel
            ):
                stats = await uow.delivery.get_stats(user_id, channel, for_update=True)
                if stats is None:
                    stats = DeliveryStats(user_id=user_id, channel=channel)
                await uow.delivery.save_stats(
                    self._tracker.record_engagement(
                        stats, EngagementType.VIEWED, response_ms, now=now
                    )
                )

            await uow.commit()

        logger.info(
            "notification_read",
            notification_id=str(notification_id),
            user_id=str(user_id),
            response_time_ms=round(response_ms),
        )
        return notification

    # --- Delivery profile ---

    async def get_delivery_config(self, user_id: UUID) -> DeliveryConfig:
        async with self._uow_factory() as uow:
            return await uow.delivery.get_config(user_id)

    async def update_delivery_config(self, config: DeliveryConfig) -> DeliveryConfig:
        """Replace the user's delivery configuration (validated on construction)."""
        async with self._uow_factory() as uow:
            saved = await uow.delivery.save_config(config)
            await uow.commit()
        logger.info(
            "delivery_config_updated",
            user_id=str(config.user_id),
            preferred_channel=config.preferred_channel.value,
        )
        return saved

    async def get_activity_pattern(self, user_id: UUID) -> UserActivityPattern:
        async with self._uow_factory() as uow:
            return await uow.delivery.get_activity_pattern(user_id)

    async def update_activity_pattern(self, pattern: UserActivityPattern) -> UserActivityPattern:
        async with self._uow_factory() as uow:
            saved = await uow.delivery.save_activity_pattern(pattern)
            await uow.commit()
        logger.info("activity_pattern_updated", user_id=str(pattern.user_id))
        return saved

    # --- Engagement ---

    async def get_engagement(
        self, user_id: UUID
    ) -> tuple[NotificationMetrics, list[DeliveryStats]]:
        """Current metrics and per-channel stats for a user."""
        async with self._uow_factory() as uow:
            metrics = await uow.delivery.get_metrics(user_id)
            stats = await uow.delivery.list_stats(user_id)
        return metrics, stats

    async def rebuild_metrics(self, user_id: UUID, now: datetime) -> NotificationMetrics:
        """Recompute metrics from the user's recent notification history."""
        async with self._uow_factory() as uow:
            history = await uow.notifications.get_created_since(
                user_id, now - self._history_window
            )
            await uow.delivery.get_metrics(user_id, for_update=True)
            metrics = self._tracker.metrics_from_history(user_id, history, now)
            await uow.delivery.save_metrics(metrics)
            await uow.commit()

        logger.info(
            "metrics_rebuilt",
            user_id=str(user_id),
            notifications=len(history),
            read_rate=round(metrics.read_rate, 3),
        )
        return metrics
