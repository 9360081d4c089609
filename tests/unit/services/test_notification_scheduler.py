"""Unit tests for NotificationScheduler."""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from core.exceptions import DeliveryError, PriorityClassificationError
from domain.entities.delivery import (
    DeliveryConfig,
    DeviceAvailability,
    NotificationMetrics,
    QuietHours,
)
from domain.entities.notification import (
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
    Priority,
)
from domain.services.notification_scheduler import NotificationScheduler
from tests.unit.conftest import FakeUnitOfWork, profile_defaults


class FakeOracle:
    """Every notification embeds to the same vector unless its title is mapped."""

    def __init__(self, vectors: dict[str, list[float]] | None = None):
        self.vectors = vectors or {}

    async def embed(self, text: str) -> list[float]:
        for title, vector in self.vectors.items():
            if f'"title":"{title}"' in text:
                return vector
        return [1.0, 0.0, 0.0]


class FakeClassifier:
    def __init__(self, label: Priority = Priority.MEDIUM, error: Exception | None = None):
        self.label = label
        self.error = error
        self.calls = 0

    async def classify(self, text: str) -> Priority:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.label


class FakeSink:
    def __init__(self, failing: set[Channel] | None = None):
        self.failing = failing or set()
        self.sent: list[tuple[UUID, Channel]] = []

    async def send(self, notification: Notification, channel: Channel) -> None:
        if channel in self.failing:
            raise DeliveryError(channel.value, "Transport rejected notification")
        self.sent.append((notification.id, channel))


def _notification(
    user_id: UUID,
    when: datetime,
    notification_type: NotificationType = NotificationType.REMINDER,
    priority: str | None = "medium",
    marker: str | None = None,
) -> Notification:
    payload = {"title": marker or "Task Notification", "body": ""}
    if priority is not None:
        payload["priority"] = priority
    return Notification(
        user_id=user_id,
        task_id=uuid4(),
        type=notification_type,
        scheduled_for=when,
        status=NotificationStatus.CLAIMED,
        payload=payload,
    )


def _history(user_id: UUID, now: datetime, read: int, unread: int) -> list[Notification]:
    """Delivered notifications from the last day, ``read`` of them acknowledged."""
    sent_at = now - timedelta(days=1)
    history = []
    for i in range(read + unread):
        n = Notification(
            user_id=user_id,
            task_id=uuid4(),
            type=NotificationType.REMINDER,
            scheduled_for=sent_at,
            status=NotificationStatus.SENT,
            channel=Channel.EMAIL,
            sent_at=sent_at,
        )
        if i < read:
            n.mark_read(sent_at + timedelta(minutes=5))
        history.append(n)
    return history


def _scheduler(
    uow: FakeUnitOfWork,
    oracle=None,
    classifier=None,
    sink=None,
    **kwargs,
) -> NotificationScheduler:
    options = {
        "batch_size": 100,
        "max_concurrent_users": 4,
        "claim_timeout_seconds": 600,
        "require_successful_delivery": False,
        "read_rate_threshold": 0.2,
        "low_engagement_backoff_hours": 24,
        "metrics_history_days": 30,
    }
    options.update(kwargs)
    return NotificationScheduler(
        lambda: uow,
        oracle or FakeOracle(),
        classifier or FakeClassifier(),
        sink or FakeSink(),
        **options,
    )


def _due(uow: FakeUnitOfWork, *notifications: Notification) -> None:
    uow.notifications.release_stale_claims.return_value = 0
    uow.notifications.query_pending.return_value = list(notifications)
    uow.notifications.claim.return_value = list(notifications)


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_nothing_due(self, uow, noon):
        _due(uow)
        summary = await _scheduler(uow).run_once(noon)

        assert summary.claimed == 0
        uow.notifications.claim.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_stale_claims_released(self, uow, noon):
        _due(uow)
        uow.notifications.release_stale_claims.return_value = 3

        summary = await _scheduler(uow).run_once(noon)

        assert summary.released_stale == 3
        cutoff = uow.notifications.release_stale_claims.await_args.args[0]
        assert cutoff == noon - timedelta(seconds=600)

    @pytest.mark.asyncio
    async def test_claims_under_run_token(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon)
        _due(uow, notification)

        summary = await _scheduler(uow).run_once(noon)

        ids, token, claimed_at = uow.notifications.claim.await_args.args
        assert ids == [notification.id]
        assert token == summary.run_id
        assert claimed_at == noon

    @pytest.mark.asyncio
    async def test_user_locks_are_dropped_after_the_run(self, uow, noon):
        first, second = uuid4(), uuid4()
        profile_defaults(uow, first)
        _due(uow, _notification(first, noon), _notification(second, noon))
        scheduler = _scheduler(uow)

        summary = await scheduler.run_once(noon)

        assert summary.delivered == 2
        assert scheduler._user_locks == {}

    @pytest.mark.asyncio
    async def test_similar_reminders_are_delivered_as_one_bundle(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.delivery.get_config.return_value = DeliveryConfig(
            user_id=user_id, preferred_channel=Channel.EMAIL
        )
        first = _notification(user_id, noon, marker="Pay rent")
        second = _notification(user_id, noon, marker="Pay the rent")
        _due(uow, first, second)
        sink = FakeSink()

        summary = await _scheduler(uow, sink=sink).run_once(noon)

        assert sink.sent == [(first.id, Channel.EMAIL)]
        assert first.status == NotificationStatus.SENT
        assert first.payload["bundled"] is True
        assert [b["id"] for b in first.payload["bundled_notifications"]] == [str(second.id)]
        assert second.status == NotificationStatus.SENT
        assert summary.delivered == 1
        assert summary.bundled == 1

    @pytest.mark.asyncio
    async def test_dissimilar_notifications_deliver_separately(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        first = _notification(user_id, noon, marker="Pay rent")
        second = _notification(user_id, noon, marker="Book flights")
        oracle = FakeOracle({"Book flights": [0.0, 1.0, 0.0]})
        _due(uow, first, second)

        summary = await _scheduler(uow, oracle=oracle).run_once(noon)

        assert summary.delivered == 2
        assert summary.bundled == 0
        assert "bundled" not in first.payload


class TestTiming:
    @pytest.mark.asyncio
    async def test_outside_active_hours_is_rescheduled(self, uow, user_id):
        evening = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        profile_defaults(uow, user_id)
        notification = _notification(user_id, evening)
        _due(uow, notification)
        sink = FakeSink()

        summary = await _scheduler(uow, sink=sink).run_once(evening)

        assert summary.rescheduled == 1
        assert sink.sent == []
        assert notification.status == NotificationStatus.PENDING
        assert notification.claim_token is None
        assert notification.scheduled_for == datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)
        uow.notifications.save_all.assert_awaited()

    @pytest.mark.asyncio
    async def test_due_soon_inside_quiet_hours_waits_for_quiet_end(self, uow, user_id):
        late = datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)
        profile_defaults(uow, user_id)
        uow.delivery.get_config.return_value = DeliveryConfig(
            user_id=user_id, quiet_hours=QuietHours(start=22, end=8)
        )
        notification = _notification(user_id, late, NotificationType.DUE_SOON)
        _due(uow, notification)
        classifier = FakeClassifier()

        await _scheduler(uow, classifier=classifier).run_once(late)

        assert notification.status == NotificationStatus.PENDING
        assert notification.scheduled_for == datetime(2026, 3, 11, 8, 0, tzinfo=timezone.utc)
        # Rescheduled units are not classified
        assert classifier.calls == 0


class TestClassification:
    @pytest.mark.asyncio
    async def test_classifier_label_applied(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon, priority="low")
        _due(uow, notification)

        await _scheduler(uow, classifier=FakeClassifier(Priority.URGENT)).run_once(noon)

        assert notification.payload["priority"] == "urgent"

    @pytest.mark.asyncio
    async def test_classifier_never_lowers_priority(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon, priority="high")
        _due(uow, notification)

        await _scheduler(uow, classifier=FakeClassifier(Priority.LOW)).run_once(noon)

        assert notification.payload["priority"] == "high"

    @pytest.mark.asyncio
    async def test_classifier_failure_keeps_existing_priority(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon, priority="high")
        _due(uow, notification)
        classifier = FakeClassifier(error=PriorityClassificationError())

        summary = await _scheduler(uow, classifier=classifier).run_once(noon)

        assert summary.delivered == 1
        assert notification.payload["priority"] == "high"

    @pytest.mark.asyncio
    async def test_unprioritized_notification_takes_classifier_label(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon, priority=None)
        _due(uow, notification)

        await _scheduler(uow, classifier=FakeClassifier(Priority.LOW)).run_once(noon)

        assert notification.payload["priority"] == "low"

    @pytest.mark.asyncio
    async def test_unprioritized_bundle_takes_classifier_label(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        first = _notification(user_id, noon, priority=None, marker="Water plants")
        second = _notification(user_id, noon, priority=None, marker="Water the plants")
        _due(uow, first, second)

        await _scheduler(uow, classifier=FakeClassifier(Priority.LOW)).run_once(noon)

        assert first.payload["bundled"] is True
        assert first.payload["priority"] == "low"

    @pytest.mark.asyncio
    async def test_classifier_failure_without_priority_falls_back_to_medium(
        self, uow, user_id, noon
    ):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon, priority=None)
        _due(uow, notification)
        classifier = FakeClassifier(error=PriorityClassificationError())

        await _scheduler(uow, classifier=classifier).run_once(noon)

        assert notification.payload["priority"] == "medium"


class TestEngagementGate:
    @pytest.mark.asyncio
    async def test_low_read_rate_defers_non_essential(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.notifications.get_created_since.return_value = _history(user_id, noon, read=1, unread=9)
        notification = _notification(user_id, noon, NotificationType.TASK_COMPLETED)
        _due(uow, notification)
        sink = FakeSink()

        summary = await _scheduler(uow, sink=sink).run_once(noon)

        assert summary.deferred == 1
        assert sink.sent == []
        assert notification.status == NotificationStatus.PENDING
        assert notification.scheduled_for == noon + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_low_read_rate_still_delivers_reminders(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.notifications.get_created_since.return_value = _history(user_id, noon, read=1, unread=9)
        notification = _notification(user_id, noon, NotificationType.REMINDER)
        _due(uow, notification)

        summary = await _scheduler(uow).run_once(noon)

        assert summary.delivered == 1
        assert notification.status == NotificationStatus.SENT

    @pytest.mark.asyncio
    async def test_no_available_device_defers(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.delivery.get_config.return_value = DeliveryConfig(
            user_id=user_id,
            device_availability=DeviceAvailability(desktop=False, mobile=False),
        )
        notification = _notification(user_id, noon, NotificationType.DUE_SOON)
        _due(uow, notification)

        summary = await _scheduler(uow).run_once(noon)

        assert summary.deferred == 1
        assert notification.status == NotificationStatus.PENDING

    @pytest.mark.asyncio
    async def test_read_rate_comes_from_delivered_history(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.delivery.get_metrics.return_value = NotificationMetrics(user_id=user_id, read_rate=0.05)
        uow.notifications.get_created_since.return_value = _history(user_id, noon, read=4, unread=0)
        notification = _notification(user_id, noon, NotificationType.TASK_COMPLETED)
        _due(uow, notification)

        summary = await _scheduler(uow).run_once(noon)

        assert summary.delivered == 1
        uow.notifications.get_created_since.assert_awaited_once_with(
            user_id, noon - timedelta(days=30)
        )
        saved = uow.delivery.save_metrics.await_args.args[0]
        # One unread sample on top of a fully read history
        assert saved.read_rate == pytest.approx(0.9)
        assert saved.updated_at == noon


class TestDelivery:
    @pytest.mark.asyncio
    async def test_both_channels_recorded_as_both(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon)
        _due(uow, notification)
        sink = FakeSink()

        await _scheduler(uow, sink=sink).run_once(noon)

        assert sink.sent == [(notification.id, Channel.EMAIL), (notification.id, Channel.PUSH)]
        assert notification.channel == Channel.BOTH
        assert notification.sent_at == noon
        assert uow.delivery.save_stats.await_count == 2
        uow.delivery.save_metrics.assert_awaited_once()
        assert all(s.args[0].updated_at == noon for s in uow.delivery.save_stats.await_args_list)

    @pytest.mark.asyncio
    async def test_partial_channel_failure_still_sent(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon)
        _due(uow, notification)
        sink = FakeSink(failing={Channel.PUSH})

        summary = await _scheduler(uow, sink=sink).run_once(noon)

        assert summary.delivered == 1
        assert notification.status == NotificationStatus.SENT
        saved = {s.args[0].channel: s.args[0] for s in uow.delivery.save_stats.await_args_list}
        assert saved[Channel.PUSH].failure_count == 1
        assert saved[Channel.EMAIL].failure_count == 0

    @pytest.mark.asyncio
    async def test_total_failure_is_sent_when_lenient(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon)
        _due(uow, notification)
        sink = FakeSink(failing={Channel.EMAIL, Channel.PUSH})

        summary = await _scheduler(uow, sink=sink).run_once(noon)

        assert notification.status == NotificationStatus.SENT
        assert summary.delivered == 1

    @pytest.mark.asyncio
    async def test_total_failure_is_failed_when_strict(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        notification = _notification(user_id, noon)
        _due(uow, notification)
        sink = FakeSink(failing={Channel.EMAIL, Channel.PUSH})

        summary = await _scheduler(
            uow, sink=sink, require_successful_delivery=True
        ).run_once(noon)

        assert notification.status == NotificationStatus.FAILED
        assert notification.sent_at is None
        assert summary.failed == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_store_error_releases_unit_claims(self, uow, user_id, noon):
        profile_defaults(uow, user_id)
        uow.delivery.get_metrics.side_effect = RuntimeError("connection reset")
        notification = _notification(user_id, noon)
        _due(uow, notification)

        summary = await _scheduler(uow).run_once(noon)

        assert summary.failed == 1
        ids, token = uow.notifications.release_claims.await_args.args
        assert ids == [notification.id]
        assert token == summary.run_id

    @pytest.mark.asyncio
    async def test_one_user_failing_does_not_stop_others(self, uow, noon):
        good, bad = uuid4(), uuid4()

        async def get_config(user_id):
            if user_id == bad:
                raise RuntimeError("profile store unavailable")
            return DeliveryConfig(user_id=user_id)

        profile_defaults(uow, good)
        uow.delivery.get_config.side_effect = get_config
        ok = _notification(good, noon)
        broken = _notification(bad, noon)
        _due(uow, broken, ok)

        summary = await _scheduler(uow).run_once(noon)

        assert summary.failed_users == [bad]
        assert summary.delivered == 1
        assert ok.status == NotificationStatus.SENT
        released_ids = uow.notifications.release_claims.await_args.args[0]
        assert released_ids == [broken.id]
