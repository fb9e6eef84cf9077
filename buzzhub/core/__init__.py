"""Core module - configuration and utilities."""

from buzzhub.core.config import settings
from buzzhub.core.exceptions import (
    AppException,
    ChannelClosed,
    ConfigurationError,
    ConversationNotFound,
    InvalidInput,
    NotParticipant,
    StoreUnavailable,
    UsernameTaken,
    UserNotFound,
)

__all__ = [
    "settings",
    "AppException",
    "ChannelClosed",
    "ConfigurationError",
    "ConversationNotFound",
    "InvalidInput",
    "NotParticipant",
    "StoreUnavailable",
    "UsernameTaken",
    "UserNotFound",
]
