"""Shared fixtures for unit tests."""

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from domain.entities.delivery import (
    DeliveryConfig,
    NotificationMetrics,
    UserActivityPattern,
)


class FakeUnitOfWork:
    """Fake Unit of Work with repository mocks for unit testing."""

    def __init__(self) -> None:
        self.notifications = AsyncMock()
        self.delivery = AsyncMock()
        self.committed = False
        self.rolled_back = False

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True

    async def __aenter__(self) -> "FakeUnitOfWork":
        return self

    async def __aexit__(self, *args: Any) -> None:
        if args and args[0] is not None:
            await self.rollback()


@pytest.fixture
def uow() -> FakeUnitOfWork:
    """Create a fresh FakeUnitOfWork."""
    return FakeUnitOfWork()


@pytest.fixture
def user_id() -> UUID:
    """A random user ID."""
    return uuid4()


@pytest.fixture
def noon() -> datetime:
    """A fixed instant inside default active hours (UTC)."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def profile_defaults(uow: FakeUnitOfWork, user_id: UUID) -> None:
    """Wire the delivery repository mock to return per-user defaults."""
    uow.delivery.get_config.return_value = DeliveryConfig(user_id=user_id)
    uow.delivery.get_activity_pattern.return_value = UserActivityPattern(user_id=user_id)
    uow.delivery.get_metrics.return_value = NotificationMetrics(user_id=user_id)
    uow.delivery.get_stats.return_value = None
    uow.notifications.get_created_since.return_value = []
