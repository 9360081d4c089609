"""SQLAlchemy implementation of Notification repository."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.entities.notification import (
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
)
from infrastructure.database.models import NotificationModel


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SQLAlchemyNotificationRepository:
    """SQLAlchemy implementation of INotificationRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, notification: Notification) -> Notification:
        """Create a new notification."""
        model = self._to_model(notification)
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return self._to_entity(model)

    async def get(self, notification_id: UUID) -> Notification | None:
        """Get a notification by ID."""
        stmt = select(NotificationModel).where(NotificationModel.id == notification_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, notification: Notification) -> Notification:
        """Persist every mutable field of an existing notification."""
        stmt = (
            update(NotificationModel)
            .where(NotificationModel.id == notification.id)
            .values(**self._mutable_values(notification))
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
        return notification

    async def save_all(self, notifications: list[Notification]) -> None:
        """Persist a batch of notifications."""
        for notification in notifications:
            await self.save(notification)

    # --- Scheduling ---

    async def query_pending(self, before: datetime, limit: int = 500) -> list[Notification]:
        """Pending notifications due at or before ``before``, oldest first."""
        stmt = (
            select(NotificationModel)
            .where(
                NotificationModel.status == NotificationStatus.PENDING.value,
                NotificationModel.scheduled_for <= before,
            )
            .order_by(NotificationModel.scheduled_for, NotificationModel.created_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars()]

    async def claim(self, ids: list[UUID], token: UUID, now: datetime) -> list[Notification]:
        """Conditionally move pending rows to claimed; return the rows won."""
        if not ids:
            return []
        # The status guard makes the claim atomic against concurrent runs
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.id.in_(ids),
                NotificationModel.status == NotificationStatus.PENDING.value,
            )
            .values(
                status=NotificationStatus.CLAIMED.value,
                claim_token=token,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

        stmt = (
            select(NotificationModel)
            .where(NotificationModel.claim_token == token)
            .order_by(NotificationModel.scheduled_for, NotificationModel.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars()]

    async def release_claims(self, ids: list[UUID], token: UUID) -> int:
        """Hand rows still claimed under ``token`` back to pending."""
        if not ids:
            return 0
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.id.in_(ids),
                NotificationModel.claim_token == token,
                NotificationModel.status == NotificationStatus.CLAIMED.value,
            )
            .values(status=NotificationStatus.PENDING.value, claim_token=None, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[return-value]

    async def release_stale_claims(self, claimed_before: datetime) -> int:
        """Hand back claims older than ``claimed_before``."""
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.status == NotificationStatus.CLAIMED.value,
                NotificationModel.claimed_at < claimed_before,
            )
            .values(status=NotificationStatus.PENDING.value, claim_token=None, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[return-value]

    # --- Per-user reads ---

    async def get_for_user(
        self,
        user_id: UUID,
        status: NotificationStatus | None = None,
        limit: int = 50,
    ) -> list[Notification]:
        """Get a user's notifications, newest first."""
        stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if status is not None:
            stmt = stmt.where(NotificationModel.status == status.value)
        stmt = stmt.order_by(NotificationModel.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars()]

    async def get_created_since(self, user_id: UUID, since: datetime) -> list[Notification]:
        """Get a user's notifications created at or after ``since``."""
        stmt = (
            select(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.created_at >= since,
            )
            .order_by(NotificationModel.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars()]

    # --- Conversion methods ---

    def _mutable_values(self, entity: Notification) -> dict:
        return {
            "status": entity.status.value,
            "channel": entity.channel.value,
            "payload": entity.payload,
            "scheduled_for": entity.scheduled_for,
            "sent_at": entity.sent_at,
            "read_at": entity.read_at,
            "claimed_at": entity.claimed_at,
            "claim_token": entity.claim_token,
            "updated_at": entity.updated_at,
        }

    def _to_entity(self, model: NotificationModel) -> Notification:
        """Convert NotificationModel to domain entity."""
        return Notification(
            id=model.id,
            user_id=model.user_id,
            task_id=model.task_id,
            type=NotificationType(model.type),
            status=NotificationStatus(model.status),
            channel=Channel(model.channel),
            payload=dict(model.payload or {}),
            scheduled_for=as_utc(model.scheduled_for),  # type: ignore[arg-type]
            sent_at=as_utc(model.sent_at),
            read_at=as_utc(model.read_at),
            claimed_at=as_utc(model.claimed_at),
            claim_token=model.claim_token,
            created_at=as_utc(model.created_at),  # type: ignore[arg-type]
            updated_at=as_utc(model.updated_at),  # type: ignore[arg-type]
        )

    def _to_model(self, entity: Notification) -> NotificationModel:
        """Convert Notification domain entity to ORM model."""
        return NotificationModel(
            id=entity.id,
            user_id=entity.user_id,
            task_id=entity.task_id,
            type=entity.type.value,
            created_at=entity.created_at,
            **self._mutable_values(entity),
        )
