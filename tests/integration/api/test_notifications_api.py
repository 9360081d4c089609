"""Integration tests for Notifications API."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import AsyncClient

from domain.entities.notification import (
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
)


async def _seed(uow_factory, notification: Notification) -> Notification:
    async with uow_factory() as uow:
        created = await uow.notifications.create(notification)
        await uow.commit()
    return created


def _sent_notification(user_id, sent_at: datetime) -> Notification:
    return Notification(
        user_id=user_id,
        task_id=uuid4(),
        type=NotificationType.REMINDER,
        scheduled_for=sent_at,
        status=NotificationStatus.SENT,
        channel=Channel.EMAIL,
        sent_at=sent_at,
        payload={"title": "Task Notification", "body": "x", "priority": "medium"},
    )


class TestCreateNotifications:
    @pytest.mark.asyncio
    async def test_create_reminder(self, authenticated_client: AsyncClient):
        task_id = str(uuid4())
        response = await authenticated_client.post(
            "/api/v1/users/me/notifications/reminders",
            json={
                "task_id": task_id,
                "when": "2026-03-10T12:00:00Z",
                "task_title": "Pay rent",
                "priority": "high",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["task_id"] == task_id
        assert data["type"] == "reminder"
        assert data["status"] == "pending"
        assert data["priority"] == "high"
        assert data["bundled"] is False
        assert data["payload"]["body"] == 'Reminder: "Pay rent" needs attention'
        assert datetime.fromisoformat(data["scheduled_for"]) == datetime(
            2026, 3, 10, 12, 0, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_naive_time_is_treated_as_utc(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/v1/users/me/notifications/reminders",
            json={"task_id": str(uuid4()), "when": "2026-03-10T12:00:00"},
        )

        assert response.status_code == 201
        assert datetime.fromisoformat(response.json()["scheduled_for"]) == datetime(
            2026, 3, 10, 12, 0, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_due_soon_is_scheduled_a_day_early(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/v1/users/me/notifications/due-soon",
            json={"task_id": str(uuid4()), "due_date": "2026-03-11T09:00:00Z"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "due_soon"
        assert datetime.fromisoformat(data["scheduled_for"]) == datetime(
            2026, 3, 10, 9, 0, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_dependency_blocked_is_due_now(self, authenticated_client: AsyncClient):
        before = datetime.now(timezone.utc)
        response = await authenticated_client.post(
            "/api/v1/users/me/notifications/dependency-blocked",
            json={"task_id": str(uuid4()), "task_title": "Deploy"},
        )

        assert response.status_code == 201
        scheduled = datetime.fromisoformat(response.json()["scheduled_for"])
        assert scheduled >= before - timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_unknown_priority_is_rejected(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/api/v1/users/me/notifications/reminders",
            json={"task_id": str(uuid4()), "when": "2026-03-10T12:00:00Z", "priority": "spicy"},
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestListNotifications:
    @pytest.mark.asyncio
    async def test_lists_only_own_notifications(
        self, authenticated_client: AsyncClient, uow_factory, test_user
    ):
        now = datetime.now(timezone.utc)
        mine = await _seed(uow_factory, _sent_notification(test_user.id, now))
        await _seed(uow_factory, _sent_notification(uuid4(), now))

        response = await authenticated_client.get("/api/v1/users/me/notifications")

        assert response.status_code == 200
        data = response.json()
        assert [n["id"] for n in data["data"]] == [str(mine.id)]
        assert data["meta"]["count"] == 1

    @pytest.mark.asyncio
    async def test_status_filter(self, authenticated_client: AsyncClient, uow_factory, test_user):
        now = datetime.now(timezone.utc)
        await _seed(uow_factory, _sent_notification(test_user.id, now))
        await authenticated_client.post(
            "/api/v1/users/me/notifications/reminders",
            json={"task_id": str(uuid4()), "when": "2030-01-01T00:00:00Z"},
        )

        response = await authenticated_client.get(
            "/api/v1/users/me/notifications", params={"status": "pending"}
        )

        assert response.status_code == 200
        assert [n["status"] for n in response.json()["data"]] == ["pending"]

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/v1/users/me/notifications")

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"


class TestMarkRead:
    @pytest.mark.asyncio
    async def test_mark_sent_notification_read(
        self, authenticated_client: AsyncClient, uow_factory, test_user
    ):
        sent_at = datetime.now(timezone.utc) - timedelta(minutes=5)
        notification = await _seed(uow_factory, _sent_notification(test_user.id, sent_at))

        response = await authenticated_client.patch(
            f"/api/v1/users/me/notifications/{notification.id}/read"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "read"
        assert response.json()["read_at"] is not None

        engagement = await authenticated_client.get("/api/v1/users/me/engagement")
        channels = {c["channel"]: c for c in engagement.json()["channels"]}
        assert channels["email"]["response_rate"] > 0

    @pytest.mark.asyncio
    async def test_read_twice_is_idempotent(
        self, authenticated_client: AsyncClient, uow_factory, test_user
    ):
        notification = await _seed(
            uow_factory, _sent_notification(test_user.id, datetime.now(timezone.utc))
        )
        url = f"/api/v1/users/me/notifications/{notification.id}/read"

        first = await authenticated_client.patch(url)
        second = await authenticated_client.patch(url)

        assert second.status_code == 200
        assert second.json()["read_at"] == first.json()["read_at"]

    @pytest.mark.asyncio
    async def test_pending_notification_conflicts(self, authenticated_client: AsyncClient):
        created = await authenticated_client.post(
            "/api/v1/users/me/notifications/reminders",
            json={"task_id": str(uuid4()), "when": "2030-01-01T00:00:00Z"},
        )

        response = await authenticated_client.patch(
            f"/api/v1/users/me/notifications/{created.json()['id']}/read"
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_NOTIFICATION_STATE"

    @pytest.mark.asyncio
    async def test_other_users_notification_is_not_found(
        self, authenticated_client: AsyncClient, uow_factory
    ):
        foreign = await _seed(
            uow_factory, _sent_notification(uuid4(), datetime.now(timezone.utc))
        )

        response = await authenticated_client.patch(
            f"/api/v1/users/me/notifications/{foreign.id}/read"
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOTIFICATION_NOT_FOUND"
