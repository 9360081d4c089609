"""Delivery profile repository protocol."""

from typing import Protocol
from uuid import UUID

from domain.entities.delivery import (
    DeliveryConfig,
    DeliveryStats,
    NotificationMetrics,
    UserActivityPattern,
)
from domain.entities.notification import Channel


class IDeliveryRepository(Protocol):
    """Repository interface for per-user delivery state.

    Getters never return None: users without a stored row get defaults.
    The ``for_update`` flag asks the store to lock the row until the
    surrounding transaction ends.
    """

    async def get_config(self, user_id: UUID) -> DeliveryConfig:
        """Get the user's delivery configuration."""
        ...

    async def save_config(self, config: DeliveryConfig) -> DeliveryConfig:
        """Upsert the user's delivery configuration."""
        ...

    async def get_activity_pattern(self, user_id: UUID) -> UserActivityPattern:
        """Get the user's activity pattern."""
        ...

    async def save_activity_pattern(self, pattern: UserActivityPattern) -> UserActivityPattern:
        """Upsert the user's activity pattern."""
        ...

    async def get_metrics(self, user_id: UUID, for_update: bool = False) -> NotificationMetrics:
        """Get the user's aggregate notification metrics."""
        ...

    async def save_metrics(self, metrics: NotificationMetrics) -> NotificationMetrics:
        """Upsert the user's aggregate notification metrics."""
        ...

    async def get_stats(
        self, user_id: UUID, channel: Channel, for_update: bool = False
    ) -> DeliveryStats | None:
        """Get stats for one channel, or None if it was never used."""
        ...

    async def list_stats(self, user_id: UUID) -> list[DeliveryStats]:
        """Get stats for every channel the user has history on."""
        ...

    async def save_stats(self, stats: DeliveryStats) -> DeliveryStats:
        """Upsert stats for one channel."""
        ...
