"""Delivery sink protocol and the default log-only sink."""

from typing import Protocol

import structlog

from domain.entities.notification import Channel, Notification

logger = structlog.get_logger()


class IDeliverySink(Protocol):
    """Hands a finalized notification to one concrete transport."""

    async def send(self, notification: Notification, channel: Channel) -> None:
        """
        Deliver a notification on one channel (email, push or in_app).

        Raises:
            DeliveryError: If the transport rejects the notification
        """
        ...


class LoggingDeliverySink:
    """Sink that records each dispatch in the log instead of a transport.

    Email and push transports are provided by the hosting application;
    this sink keeps the pipeline runnable without them.
    """

    async def send(self, notification: Notification, channel: Channel) -> None:
        logger.info(
            "notification_dispatched",
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            channel=channel.value,
            type=notification.type.value,
            title=notification.payload.get("title"),
            bundled=notification.is_bundled,
        )
