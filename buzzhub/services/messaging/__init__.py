"""Messaging service - persists messages and publishes them for delivery."""

from buzzhub.services.messaging.router import MessageRouter

__all__ = ["MessageRouter"]
