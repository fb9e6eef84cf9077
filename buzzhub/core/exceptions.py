"""Custom exceptions for the application."""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(AppException):
    """Raised when there's a configuration problem."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class InvalidInput(AppException):
    """Raised when a request carries empty or malformed values."""

    status_code = 422

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message,
            code="INVALID_INPUT",
            details={"field": field} if field else {},
        )


class ConversationNotFound(AppException):
    """Raised when a conversation does not exist."""

    status_code = 404

    def __init__(self, conversation_id: str) -> None:
        super().__init__(
            f"Conversation not found: {conversation_id}",
            code="NOT_FOUND",
            details={"conversation_id": conversation_id},
        )


class UserNotFound(AppException):
    """Raised when a user does not exist."""

    status_code = 404

    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"User not found: {user_id}",
            code="USER_NOT_FOUND",
            details={"user_id": user_id},
        )


class NotParticipant(AppException):
    """Raised when a sender or subscriber is not part of the conversation."""

    status_code = 403

    def __init__(self, conversation_id: str, user_id: str) -> None:
        super().__init__(
            f"User {user_id} is not a participant of conversation {conversation_id}",
            code="NOT_PARTICIPANT",
            details={"conversation_id": conversation_id, "user_id": user_id},
        )


class UsernameTaken(AppException):
    """Raised when a username is already claimed by another user."""

    status_code = 409

    def __init__(self, username: str) -> None:
        super().__init__(
            f"Username already taken: {username}",
            code="USERNAME_TAKEN",
            details={"username": username},
        )


class StoreUnavailable(AppException):
    """Raised when the persistence layer cannot be reached. Safe to retry."""

    status_code = 503

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details={"operation": operation} if operation else {},
        )


class ChannelClosed(AppException):
    """Raised by a delivery channel whose connection has gone away.

    Only the subscription registry sees this; it is never surfaced to publishers.
    """

    def __init__(self, channel_id: str) -> None:
        super().__init__(
            f"Delivery channel closed: {channel_id}",
            code="CHANNEL_CLOSED",
            details={"channel_id": channel_id},
        )
