"""Pydantic schemas for Notification API."""

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from domain.entities.notification import Notification

PriorityLabel = Literal["low", "medium", "high", "urgent"]


def _assume_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class NotificationResponse(BaseModel):
    """Single notification."""

    id: UUID
    task_id: UUID
    type: str
    status: str
    channel: str
    priority: str
    bundled: bool
    payload: dict[str, Any]
    scheduled_for: datetime
    sent_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_entity(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            task_id=notification.task_id,
            type=notification.type.value,
            status=notification.status.value,
            channel=notification.channel.value,
            priority=notification.priority.label,
            bundled=notification.is_bundled,
            payload=notification.payload,
            scheduled_for=notification.scheduled_for,
            sent_at=notification.sent_at,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Notification list response."""

    data: list[NotificationResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class TaskNotificationRequest(BaseModel):
    """Fields shared by every task notification constructor."""

    task_id: UUID
    task_title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    priority: PriorityLabel | None = None


class CreateReminderRequest(TaskNotificationRequest):
    """Schedule a reminder at a given instant."""

    when: datetime

    @field_validator("when")
    @classmethod
    def when_utc(cls, value: datetime) -> datetime:
        return _assume_utc(value)


class CreateDueSoonRequest(TaskNotificationRequest):
    """Schedule a due-soon notice ahead of a due date."""

    due_date: datetime

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value: datetime) -> datetime:
        return _assume_utc(value)


class CreateDependencyBlockedRequest(TaskNotificationRequest):
    """Notify that a task is blocked by its dependencies."""
