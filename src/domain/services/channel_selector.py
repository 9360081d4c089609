"""Channel selection: one scoring policy with a metrics-only fallback."""

from dataclasses import dataclass

from domain.entities.delivery import (
    DeliveryConfig,
    DeliveryStats,
    NotificationMetrics,
    UserActivityPattern,
)
from domain.entities.notification import Channel

# Score weights
DELIVERY_WEIGHT = 0.3
RESPONSE_WEIGHT = 0.3
ENGAGEMENT_WEIGHT = 0.2
RELIABILITY_WEIGHT = 0.2
DEVICE_WEIGHT = 0.2
FAILURE_SCALE = 100

# Metrics-only policy: both channels above this effectiveness -> both
DUAL_CHANNEL_EFFECTIVENESS = 0.7


@dataclass(frozen=True, slots=True)
class ChannelChoice:
    channel: Channel
    score: float


class ChannelSelector:
    """Picks the delivery channel for a user.

    Enabled channels are scored from their DeliveryStats plus a bonus for
    the device class the channel reaches. When none of the enabled
    channels has any stats yet, the user's NotificationMetrics decide.
    """

    def select(
        self,
        config: DeliveryConfig,
        activity: UserActivityPattern,
        stats: list[DeliveryStats],
        metrics: NotificationMetrics | None = None,
    ) -> ChannelChoice:
        enabled = config.enabled_channels()
        if not enabled:
            return ChannelChoice(channel=Channel.IN_APP, score=0.0)

        by_channel = {s.channel: s for s in stats}
        if metrics is not None and not any(c in by_channel for c in enabled):
            return ChannelChoice(channel=self._from_metrics(metrics, enabled), score=0.0)

        scored = [
            ChannelChoice(channel=c, score=self.score(c, by_channel.get(c), activity))
            for c in enabled
        ]
        # max() keeps the first enumerated channel on ties
        return max(scored, key=lambda choice: choice.score)

    def score(
        self,
        channel: Channel,
        stats: DeliveryStats | None,
        activity: UserActivityPattern,
    ) -> float:
        """Weighted score of one channel; channels without stats score 0."""
        if stats is None:
            return 0.0

        device_bonus = 0.0
        if channel == Channel.PUSH:
            device_bonus = activity.device_usage.mobile * DEVICE_WEIGHT
        elif channel == Channel.IN_APP:
            device_bonus = activity.device_usage.desktop * DEVICE_WEIGHT

        return (
            stats.delivery_rate * DELIVERY_WEIGHT
            + stats.response_rate * RESPONSE_WEIGHT
            + stats.engagement_score * ENGAGEMENT_WEIGHT
            + (1 - stats.failure_count / FAILURE_SCALE) * RELIABILITY_WEIGHT
            + device_bonus
        )

    @staticmethod
    def best_channel(metrics: NotificationMetrics) -> Channel:
        """Metrics-only policy: both, or the more effective of email and push."""
        email, push = metrics.email_effectiveness, metrics.push_effectiveness
        if email > DUAL_CHANNEL_EFFECTIVENESS and push > DUAL_CHANNEL_EFFECTIVENESS:
            return Channel.BOTH
        if email > push:
            return Channel.EMAIL
        return Channel.PUSH

    def _from_metrics(self, metrics: NotificationMetrics, enabled: list[Channel]) -> Channel:
        choice = self.best_channel(metrics)
        wanted = [Channel.EMAIL, Channel.PUSH] if choice == Channel.BOTH else [choice]
        allowed = [c for c in wanted if c in enabled]
        if len(allowed) == 2:
            return Channel.BOTH
        if allowed:
            return allowed[0]
        return enabled[0]

    @staticmethod
    def resolve_channels(channel: Channel, preferred: Channel) -> list[Channel]:
        """Concrete sink channels for a selected channel.

        ``both`` honours the user's preference: both channels when the
        preference is ``both``, otherwise only the preferred one.
        """
        if channel == Channel.BOTH:
            if preferred == Channel.BOTH:
                return [Channel.EMAIL, Channel.PUSH]
            return [preferred]
        return [channel]
