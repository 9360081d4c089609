"""Notification repository protocol."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from domain.entities.notification import Notification, NotificationStatus


class INotificationRepository(Protocol):
    """Repository interface for Notification entities."""

    async def create(self, notification: Notification) -> Notification:
        """Create a new notification."""
        ...

    async def get(self, notification_id: UUID) -> Notification | None:
        """Get a notification by ID."""
        ...

    async def save(self, notification: Notification) -> Notification:
        """Persist every mutable field of an existing notification."""
        ...

    async def save_all(self, notifications: list[Notification]) -> None:
        """Persist a batch of notifications."""
        ...

    # --- Scheduling ---

    async def query_pending(self, before: datetime, limit: int = 500) -> list[Notification]:
        """Pending notifications with scheduled_for <= before, oldest first."""
        ...

    async def claim(self, ids: list[UUID], token: UUID, now: datetime) -> list[Notification]:
        """Atomically move still-pending rows to claimed under ``token``.

        Rows that another run claimed first are silently skipped; the
        return value holds only the rows this token now owns.
        """
        ...

    async def release_claims(self, ids: list[UUID], token: UUID) -> int:
        """Hand rows claimed under ``token`` back to pending. Returns count."""
        ...

    async def release_stale_claims(self, claimed_before: datetime) -> int:
        """Hand back claims abandoned by crashed runs. Returns count."""
        ...

    # --- Per-user reads ---

    async def get_for_user(
        self,
        user_id: UUID,
        status: NotificationStatus | None = None,
        limit: int = 50,
    ) -> list[Notification]:
        """Get a user's notifications, newest first."""
        ...

    async def get_created_since(self, user_id: UUID, since: datetime) -> list[Notification]:
        """Get a user's notifications created at or after ``since``."""
        ...
