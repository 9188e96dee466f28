"""Push notifications for lifecycle events."""

from .dispatch import NotificationDispatch
from .provider import (
    LoggingNotificationProvider,
    NotificationProvider,
    WebhookNotificationProvider,
)

__all__ = [
    "NotificationDispatch",
    "NotificationProvider",
    "LoggingNotificationProvider",
    "WebhookNotificationProvider",
]
