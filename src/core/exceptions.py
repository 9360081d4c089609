"""Custom exceptions and error codes."""

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes for the engine and its API."""

    # Authentication errors (401)
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Not found errors (404)
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DELIVERY_CONFIG = "INVALID_DELIVERY_CONFIG"
    INVALID_ACTIVITY_PATTERN = "INVALID_ACTIVITY_PATTERN"

    # Conflict errors (409)
    INVALID_NOTIFICATION_STATE = "INVALID_NOTIFICATION_STATE"

    # Rate limiting (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Upstream errors (502/503)
    DELIVERY_FAILED = "DELIVERY_FAILED"
    SIMILARITY_UNAVAILABLE = "SIMILARITY_UNAVAILABLE"
    CLASSIFIER_UNAVAILABLE = "CLASSIFIER_UNAVAILABLE"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Any | None = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(
        self,
        message: str = "Authentication required",
        error_code: ErrorCode = ErrorCode.UNAUTHORIZED,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=401,
        )


class NotificationNotFoundError(AppException):
    """Notification not found."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(
            error_code=ErrorCode.NOTIFICATION_NOT_FOUND,
            message=f"Notification not found: {notification_id}",
            status_code=404,
            details={"notification_id": notification_id},
        )


class InvalidNotificationStateError(AppException):
    """Requested transition is not allowed from the notification's current status."""

    def __init__(self, notification_id: str, status: str, target: str) -> None:
        super().__init__(
            error_code=ErrorCode.INVALID_NOTIFICATION_STATE,
            message=f"Cannot move notification from {status} to {target}",
            status_code=409,
            details={
                "notification_id": notification_id,
                "status": status,
                "target": target,
            },
        )


class InvalidDeliveryConfigError(AppException):
    """Delivery configuration is malformed."""

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.INVALID_DELIVERY_CONFIG,
            message=message,
            status_code=400,
            details=details,
        )


class InvalidActivityPatternError(AppException):
    """User activity pattern is malformed."""

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.INVALID_ACTIVITY_PATTERN,
            message=message,
            status_code=400,
            details=details,
        )


class DeliveryError(AppException):
    """A delivery sink rejected a notification on one channel."""

    def __init__(self, channel: str, message: str = "Delivery failed") -> None:
        super().__init__(
            error_code=ErrorCode.DELIVERY_FAILED,
            message=f"{message} ({channel})",
            status_code=502,
            details={"channel": channel},
        )
        self.channel = channel


class SimilarityOracleError(AppException):
    """The embedding service could not produce a vector."""

    def __init__(self, message: str = "Similarity service unavailable") -> None:
        super().__init__(
            error_code=ErrorCode.SIMILARITY_UNAVAILABLE,
            message=message,
            status_code=503,
        )


class PriorityClassificationError(AppException):
    """The text classifier could not produce a priority label."""

    def __init__(self, message: str = "Priority classifier unavailable") -> None:
        super().__init__(
            error_code=ErrorCode.CLASSIFIER_UNAVAILABLE,
            message=message,
            status_code=503,
        )
