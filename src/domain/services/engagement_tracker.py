"""Engagement tracking: moving-average updates from delivery outcomes.

Two update rules live side by side and operate on different aggregates:

* fixed-decay EMA for NotificationMetrics:  new = old * d + x * (1 - d)
* windowed EMA for DeliveryStats:           new = (old * (N - 1) + x) / N
"""

from dataclasses import replace
from datetime import datetime
from uuid import UUID

from core.config import settings
from domain.entities.delivery import (
    DeliveryOutcome,
    DeliveryStats,
    EngagementType,
    NotificationMetrics,
)
from domain.entities.notification import Channel, Notification, NotificationStatus, utcnow


def fixed_decay_average(current: float, sample: float, decay: float = 0.9) -> float:
    """Exponential moving average with a constant decay factor."""
    return current * decay + sample * (1 - decay)


def windowed_average(current: float, sample: float, window_size: int = 100) -> float:
    """Moving average approximating a window of ``window_size`` samples."""
    return (current * (window_size - 1) + sample) / window_size


def _response_time_ms(notification: Notification) -> float:
    if notification.read_at and notification.sent_at:
        return (notification.read_at - notification.sent_at).total_seconds() * 1000
    return 0.0


class EngagementTracker:
    """Folds delivery results and read acknowledgements into user statistics."""

    def __init__(
        self,
        decay_factor: float = settings.metrics_decay_factor,
        window_size: int = settings.stats_window_size,
        decay_failure_count: bool = settings.decay_failure_count,
    ) -> None:
        self._decay = decay_factor
        self._window = window_size
        self._decay_failure_count = decay_failure_count

    # --- DeliveryStats (windowed) ---

    def record_delivery(
        self, stats: DeliveryStats, outcome: DeliveryOutcome, now: datetime | None = None
    ) -> DeliveryStats:
        """Fold one delivery attempt into the channel's stats."""
        now = now or utcnow()
        failure_count = stats.failure_count
        if self._decay_failure_count:
            # Decayed count: N * recent failure rate, bounded by N
            failure_count = failure_count * (self._window - 1) / self._window + (
                0 if outcome.success else 1
            )
        elif not outcome.success:
            failure_count += 1

        updated = replace(
            stats,
            delivery_rate=windowed_average(
                stats.delivery_rate, 1 if outcome.success else 0, self._window
            ),
            failure_count=failure_count,
            updated_at=now,
        )

        if outcome.engagement_type is not None:
            updated = self.record_engagement(
                updated, outcome.engagement_type, outcome.response_time_ms, now=now
            )
        return updated

    def record_engagement(
        self,
        stats: DeliveryStats,
        engagement_type: EngagementType,
        response_time_ms: float | None = None,
        now: datetime | None = None,
    ) -> DeliveryStats:
        """Fold a user interaction into the channel's response statistics."""
        avg_response = stats.avg_response_time_ms
        if response_time_ms is not None and response_time_ms > 0:
            avg_response = windowed_average(avg_response, response_time_ms, self._window)

        return replace(
            stats,
            response_rate=windowed_average(stats.response_rate, 1, self._window),
            engagement_score=windowed_average(
                stats.engagement_score, engagement_type.weight, self._window
            ),
            avg_response_time_ms=avg_response,
            updated_at=now or utcnow(),
        )

    # --- NotificationMetrics (fixed decay) ---

    def record_outcome(
        self,
        metrics: NotificationMetrics,
        notification: Notification,
        now: datetime | None = None,
    ) -> NotificationMetrics:
        """Fold a notification's current state into the user's metrics."""
        was_read = 1.0 if notification.status == NotificationStatus.READ else 0.0
        response_time = _response_time_ms(notification)

        email = metrics.email_effectiveness
        if notification.channel in (Channel.EMAIL, Channel.BOTH):
            email = fixed_decay_average(email, was_read, self._decay)

        push = metrics.push_effectiveness
        if notification.channel in (Channel.PUSH, Channel.BOTH):
            push = fixed_decay_average(push, was_read, self._decay)

        return replace(
            metrics,
            read_rate=fixed_decay_average(metrics.read_rate, was_read, self._decay),
            response_time_ms=(
                fixed_decay_average(metrics.response_time_ms, response_time, self._decay)
                if response_time > 0
                else metrics.response_time_ms
            ),
            email_effectiveness=email,
            push_effectiveness=push,
            updated_at=now or utcnow(),
        )

    @staticmethod
    def metrics_from_history(
        user_id: UUID, notifications: list[Notification], now: datetime
    ) -> NotificationMetrics:
        """Rebuild metrics from scratch out of a user's recent notifications.

        Only sent and read notifications count. Users without such history
        get the optimistic defaults (everything 1.0).
        """
        notifications = [
            n
            for n in notifications
            if n.status in (NotificationStatus.SENT, NotificationStatus.READ)
        ]
        if not notifications:
            return NotificationMetrics(user_id=user_id, updated_at=now)

        read = [n for n in notifications if n.status == NotificationStatus.READ]
        email = [n for n in notifications if n.channel in (Channel.EMAIL, Channel.BOTH)]
        push = [n for n in notifications if n.channel in (Channel.PUSH, Channel.BOTH)]
        response_times = [t for t in (_response_time_ms(n) for n in read) if t > 0]

        def read_share(group: list[Notification]) -> float:
            hits = sum(1 for n in group if n.status == NotificationStatus.READ)
            return hits / (len(group) or 1)

        return NotificationMetrics(
            user_id=user_id,
            read_rate=len(read) / len(notifications),
            response_time_ms=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
            email_effectiveness=read_share(email),
            push_effectiveness=read_share(push),
            updated_at=now,
        )
