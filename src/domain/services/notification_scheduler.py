"""Batch scheduler: claims due notifications and drives them to delivery."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from uuid import UUID, uuid4

import structlog

from core.config import settings
from core.exceptions import AppException
from domain.entities.delivery import (
    SELECTABLE_CHANNELS,
    DeliveryConfig,
    DeliveryOutcome,
    DeliveryStats,
    NotificationMetrics,
    UserActivityPattern,
)
from domain.entities.notification import (
    ESSENTIAL_TYPES,
    Channel,
    Notification,
    NotificationStatus,
    Priority,
)
from domain.repositories.unit_of_work import IUnitOfWork
from domain.services.bundling import BundleUnit, BundlingEngine
from domain.services.channel_selector import ChannelSelector
from domain.services.delivery_time import DeliveryTimeCalculator
from domain.services.engagement_tracker import EngagementTracker
from infrastructure.ai.provider import IPriorityClassifier, ISimilarityOracle
from infrastructure.delivery.sink import IDeliverySink

logger = structlog.get_logger()


class UnitResult(StrEnum):
    DELIVERED = "delivered"
    RESCHEDULED = "rescheduled"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass
class RunSummary:
    """What one scheduler run did."""

    run_id: UUID
    claimed: int = 0
    delivered: int = 0
    bundled: int = 0
    rescheduled: int = 0
    deferred: int = 0
    failed: int = 0
    released_stale: int = 0
    failed_users: list[UUID] = field(default_factory=list)

    def record(self, result: UnitResult) -> None:
        if result == UnitResult.DELIVERED:
            self.delivered += 1
        elif result == UnitResult.RESCHEDULED:
            self.rescheduled += 1
        elif result == UnitResult.DEFERRED:
            self.deferred += 1
        else:
            self.failed += 1


class NotificationScheduler:
    """Runs the claim -> bundle -> time -> classify -> channel -> deliver pipeline.

    Each run claims due notifications under a fresh token, so concurrent
    runs never process the same row. Users are processed concurrently;
    each user's units are decided and persisted one transaction at a time.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        oracle: ISimilarityOracle,
        classifier: IPriorityClassifier,
        sink: IDeliverySink,
        *,
        timing: DeliveryTimeCalculator | None = None,
        selector: ChannelSelector | None = None,
        tracker: EngagementTracker | None = None,
        bundler: BundlingEngine | None = None,
        batch_size: int = settings.scheduler_batch_size,
        max_concurrent_users: int = settings.scheduler_max_concurrent_users,
        claim_timeout_seconds: int = settings.scheduler_claim_timeout_seconds,
        require_successful_delivery: bool = settings.require_successful_delivery,
        read_rate_threshold: float = settings.engagement_read_rate_threshold,
        low_engagement_backoff_hours: int = settings.low_engagement_backoff_hours,
        metrics_history_days: int = settings.metrics_history_days,
    ) -> None:
        self._uow_factory = uow_factory
        self._classifier = classifier
        self._sink = sink
        self._bundler = bundler or BundlingEngine(oracle)
        self._timing = timing or DeliveryTimeCalculator()
        self._selector = selector or ChannelSelector()
        self._tracker = tracker or EngagementTracker()
        self._batch_size = batch_size
        self._max_concurrent_users = max_concurrent_users
        self._claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self._require_successful_delivery = require_successful_delivery
        self._read_rate_threshold = read_rate_threshold
        self._backoff = timedelta(hours=low_engagement_backoff_hours)
        self._history_window = timedelta(days=metrics_history_days)
        # Single writer per user within this process; entries live while in use
        self._user_locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}

    async def run_once(self, now: datetime) -> RunSummary:
        """Process every notification due at ``now``. Safe to call repeatedly."""
        token = uuid4()
        summary = RunSummary(run_id=token)

        with structlog.contextvars.bound_contextvars(run_id=str(token)):
            claimed = await self._claim(now, token, summary)
            if not claimed:
                return summary

            by_user: dict[UUID, list[Notification]] = {}
            for notification in claimed:
                by_user.setdefault(notification.user_id, []).append(notification)

            semaphore = asyncio.Semaphore(self._max_concurrent_users)

            async def guarded(user_id: UUID, notifications: list[Notification]) -> None:
                async with semaphore:
                    await self._process_user(user_id, notifications, now, token, summary)

            results = await asyncio.gather(
                *(guarded(uid, items) for uid, items in by_user.items()),
                return_exceptions=True,
            )

            for (user_id, notifications), result in zip(by_user.items(), results):
                if result is None:
                    continue
                if not isinstance(result, Exception):
                    raise result
                # One user's failure never aborts the run
                summary.failed_users.append(user_id)
                await self._release(notifications, token)
                logger.error(
                    "scheduler_user_failed",
                    user_id=str(user_id),
                    error=str(result),
                    error_type=type(result).__name__,
                    exc_info=result,
                )

            logger.info(
                "scheduler_run_completed",
                claimed=summary.claimed,
                delivered=summary.delivered,
                bundled=summary.bundled,
                rescheduled=summary.rescheduled,
                deferred=summary.deferred,
                failed=summary.failed,
                failed_users=len(summary.failed_users),
            )
        return summary

    # --- Claiming ---

    async def _claim(
        self, now: datetime, token: UUID, summary: RunSummary
    ) -> list[Notification]:
        async with self._uow_factory() as uow:
            summary.released_stale = await uow.notifications.release_stale_claims(
                now - self._claim_timeout
            )
            pending = await uow.notifications.query_pending(now, limit=self._batch_size)
            claimed = []
            if pending:
                claimed = await uow.notifications.claim([n.id for n in pending], token, now)
            await uow.commit()

        summary.claimed = len(claimed)
        if summary.released_stale:
            logger.warning("stale_claims_released", count=summary.released_stale)
        if pending and len(claimed) < len(pending):
            logger.info("claim_contention", pending=len(pending), claimed=len(claimed))
        return claimed

    async def _release(self, notifications: list[Notification], token: UUID) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.notifications.release_claims([n.id for n in notifications], token)
                await uow.commit()
        except Exception:
            # Stale-claim recovery picks these up on a later run
            logger.exception("claim_release_failed", count=len(notifications))

    # --- Per user ---

    async def _process_user(
        self,
        user_id: UUID,
        notifications: list[Notification],
        now: datetime,
        token: UUID,
        summary: RunSummary,
    ) -> None:
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                await self._process_user_locked(user_id, notifications, now, token, summary)
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._user_locks[user_id]

    async def _process_user_locked(
        self,
        user_id: UUID,
        notifications: list[Notification],
        now: datetime,
        token: UUID,
        summary: RunSummary,
    ) -> None:
        with structlog.contextvars.bound_contextvars(user_id=str(user_id)):
            async with self._uow_factory() as uow:
                config = await uow.delivery.get_config(user_id)
                activity = await uow.delivery.get_activity_pattern(user_id)

            # Bundling sees the user's whole batch before any decision
            units = await self._bundler.bundle(notifications)

            for unit in units:
                try:
                    result = await self._process_unit(unit, config, activity, now)
                except AppException as e:
                    logger.warning(
                        "notification_unit_failed",
                        notification_id=str(unit.carrier.id),
                        error_code=e.error_code.value,
                        error=e.message,
                    )
                    await self._release(unit.members, token)
                    summary.record(UnitResult.FAILED)
                    continue
                except Exception:
                    # Store errors roll the unit back; its claims go back to pending
                    logger.exception(
                        "notification_unit_failed",
                        notification_id=str(unit.carrier.id),
                    )
                    await self._release(unit.members, token)
                    summary.record(UnitResult.FAILED)
                    continue
                summary.bundled += len(unit.absorbed)
                summary.record(result)

    # --- Per unit ---

    async def _process_unit(
        self,
        unit: BundleUnit,
        config: DeliveryConfig,
        activity: UserActivityPattern,
        now: datetime,
    ) -> UnitResult:
        carrier = unit.carrier
        unit.merge(now)

        quiet_hours = config.quiet_hours or activity.quiet_hours
        optimal = self._timing.optimal_time(activity, quiet_hours, now)
        if optimal > now:
            carrier.reschedule(optimal, now)
            async with self._uow_factory() as uow:
                await uow.notifications.save_all(unit.members)
                await uow.commit()
            logger.info(
                "notification_rescheduled",
                notification_id=str(carrier.id),
                scheduled_for=optimal.isoformat(),
            )
            return UnitResult.RESCHEDULED

        # Classification completes before anything is delivered
        priority = await self._classify(carrier, unit.priority)
        carrier.payload = {**carrier.payload, "priority": priority.label}

        async with self._uow_factory() as uow:
            # Row lock only; the engagement basis is the delivered history
            await uow.delivery.get_metrics(carrier.user_id, for_update=True)
            history = await uow.notifications.get_created_since(
                carrier.user_id, now - self._history_window
            )
            metrics = self._tracker.metrics_from_history(carrier.user_id, history, now)

            if not self._should_deliver(unit, config, metrics):
                carrier.reschedule(now + self._backoff, now)
                await uow.notifications.save_all(unit.members)
                await uow.commit()
                logger.info(
                    "notification_deferred",
                    notification_id=str(carrier.id),
                    read_rate=round(metrics.read_rate, 3),
                )
                return UnitResult.DEFERRED

            stats: dict[Channel, DeliveryStats] = {}
            for channel in SELECTABLE_CHANNELS:
                found = await uow.delivery.get_stats(carrier.user_id, channel, for_update=True)
                if found is not None:
                    stats[channel] = found

            choice = self._selector.select(config, activity, list(stats.values()), metrics)
            channels = self._selector.resolve_channels(choice.channel, config.preferred_channel)
            outcomes = await self._deliver(carrier, channels)
            used = Channel.BOTH if len(channels) > 1 else channels[0]

            delivered = any(o.success for o in outcomes)
            if self._require_successful_delivery and not delivered:
                carrier.mark_failed(now, used)
            else:
                carrier.mark_sent(now, used)

            for outcome in outcomes:
                current = stats.get(outcome.channel) or DeliveryStats(
                    user_id=carrier.user_id, channel=outcome.channel
                )
                await uow.delivery.save_stats(
                    self._tracker.record_delivery(current, outcome, now=now)
                )
            await uow.delivery.save_metrics(
                self._tracker.record_outcome(metrics, carrier, now=now)
            )

            await uow.notifications.save_all(unit.members)
            await uow.commit()

        logger.info(
            "notification_delivered" if delivered else "notification_undelivered",
            notification_id=str(carrier.id),
            channel=used.value,
            score=round(choice.score, 3),
            priority=priority.label,
            bundled=len(unit.absorbed),
            status=carrier.status.value,
        )
        if carrier.status == NotificationStatus.SENT:
            return UnitResult.DELIVERED
        return UnitResult.FAILED

    async def _classify(self, carrier: Notification, floor: Priority | None) -> Priority:
        """Classifier label, never below a priority a member stated explicitly."""
        try:
            label = await self._classifier.classify(carrier.content_text())
        except Exception as e:
            logger.warning(
                "priority_classification_failed",
                notification_id=str(carrier.id),
                error=str(e),
            )
            return floor or Priority.MEDIUM
        return max(label, floor) if floor is not None else label

    def _should_deliver(
        self,
        unit: BundleUnit,
        config: DeliveryConfig,
        metrics: NotificationMetrics,
    ) -> bool:
        if not config.device_availability.any:
            return False
        if metrics.read_rate < self._read_rate_threshold:
            # Disengaged users only get notifications that need action
            return any(n.type in ESSENTIAL_TYPES for n in unit.members)
        return True

    async def _deliver(
        self, notification: Notification, channels: list[Channel]
    ) -> list[DeliveryOutcome]:
        outcomes: list[DeliveryOutcome] = []
        for channel in channels:
            try:
                await self._sink.send(notification, channel)
            except Exception as e:
                logger.warning(
                    "notification_channel_failed",
                    notification_id=str(notification.id),
                    channel=channel.value,
                    error=str(e),
                    exc_info=True,
                )
                outcomes.append(DeliveryOutcome(channel=channel, success=False, error=str(e)))
                continue
            outcomes.append(DeliveryOutcome(channel=channel, success=True))
        return outcomes
