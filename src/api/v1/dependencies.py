"""Dependency injection factories for API v1."""

from functools import lru_cache
from typing import Callable

from domain.services.notification_scheduler import NotificationScheduler
from domain.services.notification_service import NotificationService
from infrastructure.ai.cohere_client import CohereClient
from infrastructure.database.session import async_session_factory
from infrastructure.database.sqlalchemy_uow import SQLAlchemyUnitOfWork
from infrastructure.delivery.sink import LoggingDeliverySink


def get_uow_factory() -> Callable[[], SQLAlchemyUnitOfWork]:
    """Factory for creating Unit of Work instances."""

    def factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(async_session_factory)

    return factory


@lru_cache
def get_notification_service() -> NotificationService:
    """Get Notification service instance."""
    return NotificationService(get_uow_factory())


@lru_cache
def get_notification_scheduler() -> NotificationScheduler:
    """Get the scheduler wired to Cohere and the logging sink."""
    cohere = CohereClient()
    return NotificationScheduler(
        get_uow_factory(),
        oracle=cohere,
        classifier=cohere,
        sink=LoggingDeliverySink(),
    )
