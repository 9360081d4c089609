"""Notification domain entities and enums."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum, StrEnum
from typing import Any
from uuid import UUID, uuid4

import orjson

DESCRIPTION_PREVIEW_CHARS = 100


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class NotificationType(StrEnum):
    """What happened to the task the notification is about."""

    REMINDER = "reminder"
    DEPENDENCY_BLOCKED = "dependency_blocked"
    DEPENDENCY_UNBLOCKED = "dependency_unblocked"
    TASK_COMPLETED = "task_completed"
    DUE_SOON = "due_soon"


# Types still delivered to users whose read rate has collapsed.
ESSENTIAL_TYPES = frozenset(
    {
        NotificationType.REMINDER,
        NotificationType.DEPENDENCY_BLOCKED,
        NotificationType.DUE_SOON,
    }
)


class NotificationStatus(StrEnum):
    """Notification lifecycle.

    pending -> claimed -> sent -> read. ``claimed`` is the in-process marker
    held by one scheduler run; ``failed`` is only reached when delivery is
    configured to require a successful channel.
    """

    PENDING = "pending"
    CLAIMED = "claimed"
    SENT = "sent"
    READ = "read"
    FAILED = "failed"


class Channel(StrEnum):
    """Delivery medium."""

    EMAIL = "email"
    PUSH = "push"
    BOTH = "both"
    IN_APP = "in_app"


class Priority(IntEnum):
    """Priority ladder. Higher value = more urgent.

    Use max() to combine priorities:
        max(Priority.LOW, Priority.HIGH)  # Priority.HIGH
    """

    LOW = 10
    MEDIUM = 20
    HIGH = 30
    URGENT = 40

    @property
    def label(self) -> str:
        """Lower-case wire label (``"high"``)."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any, default: "Priority | None" = None) -> "Priority":
        """Parse a label such as ``"High"`` or ``"urgent"``.

        Unknown or missing values fall back to ``default`` (MEDIUM).
        """
        if isinstance(value, Priority):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        return default if default is not None else cls.MEDIUM


@dataclass(frozen=True, slots=True)
class BundledNotification:
    """Summary of a notification merged into a bundle carrier."""

    id: UUID
    type: NotificationType
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"id": str(self.id), "type": self.type.value, "payload": self.payload}


@dataclass
class Notification:
    """Domain entity for one potential delivery."""

    user_id: UUID
    task_id: UUID
    type: NotificationType
    scheduled_for: datetime
    id: UUID = field(default_factory=uuid4)
    status: NotificationStatus = NotificationStatus.PENDING
    channel: Channel = Channel.BOTH
    payload: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime | None = None
    read_at: datetime | None = None
    claimed_at: datetime | None = None
    claim_token: UUID | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def priority(self) -> Priority:
        return Priority.parse(self.payload.get("priority"))

    @property
    def stated_priority(self) -> Priority | None:
        """Priority the creator or the engine put on the payload, if any."""
        if "priority" not in self.payload:
            return None
        return self.priority

    @property
    def is_bundled(self) -> bool:
        return bool(self.payload.get("bundled"))

    def content_text(self) -> str:
        """Text handed to the similarity oracle and the classifier."""
        serialized = orjson.dumps(self.payload, option=orjson.OPT_SORT_KEYS).decode()
        return f"{self.type.value} {serialized}"

    def is_open(self) -> bool:
        """Whether the engine may still change schedule or payload."""
        return self.status in (NotificationStatus.PENDING, NotificationStatus.CLAIMED)

    def reschedule(self, when: datetime, now: datetime) -> None:
        """Move the notification to a later slot and hand it back to pending."""
        self.scheduled_for = when
        self.status = NotificationStatus.PENDING
        self.claimed_at = None
        self.claim_token = None
        self.updated_at = now

    def mark_sent(self, now: datetime, channel: Channel | None = None) -> None:
        if channel is not None:
            self.channel = channel
        self.status = NotificationStatus.SENT
        self.sent_at = now
        self.claimed_at = None
        self.claim_token = None
        self.updated_at = now

    def mark_failed(self, now: datetime, channel: Channel | None = None) -> None:
        if channel is not None:
            self.channel = channel
        self.status = NotificationStatus.FAILED
        self.claimed_at = None
        self.claim_token = None
        self.updated_at = now

    def mark_read(self, now: datetime) -> None:
        # sent_at must precede read_at; clamp clock skew
        self.status = NotificationStatus.READ
        self.read_at = max(now, self.sent_at) if self.sent_at else now
        self.updated_at = now


def build_notification_content(
    notification_type: NotificationType,
    task_title: str,
    description: str | None = None,
    priority: Priority | str | None = None,
) -> dict[str, Any]:
    """Build the ``{title, body}`` payload for a task notification.

    ``priority`` is only written when given; unprioritized notifications are
    left to the classifier.
    """
    templates = {
        NotificationType.REMINDER: 'Reminder: "{title}" needs attention',
        NotificationType.DEPENDENCY_BLOCKED: 'Task "{title}" is blocked by incomplete dependencies',
        NotificationType.DEPENDENCY_UNBLOCKED: (
            'Good news! All dependencies for "{title}" are now complete'
        ),
        NotificationType.TASK_COMPLETED: 'Task "{title}" has been marked as complete',
        NotificationType.DUE_SOON: 'Task "{title}" is due in the next 24 hours',
    }
    body = templates[notification_type].format(title=task_title)

    if description:
        preview = description[:DESCRIPTION_PREVIEW_CHARS]
        if len(description) > DESCRIPTION_PREVIEW_CHARS:
            preview += "..."
        body += f"\nDetails: {preview}"

    content: dict[str, Any] = {"title": "Task Notification", "body": body}
    if priority is not None:
        content["priority"] = Priority.parse(priority).label
    return content
