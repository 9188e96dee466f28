"""Push notification providers."""

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class NotificationProvider(Protocol):
    def send(
        self, token: str, title: str, body: str, data: dict[str, str] | None = None
    ) -> bool: ...

    def close(self) -> None: ...


class LoggingNotificationProvider:
    """Records notifications instead of delivering them.

    Used when no push relay is configured and in tests; ``sent`` keeps every
    message in the order it was sent.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send(
        self, token: str, title: str, body: str, data: dict[str, str] | None = None
    ) -> bool:
        message = {"token": token, "title": title, "body": body, "data": dict(data or {})}
        self.sent.append(message)
        logger.info(f"[MOCK] Would send notification: {title}")
        return True

    def close(self) -> None:
        pass


class WebhookNotificationProvider:
    """Posts notifications as JSON to a push relay."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout)

    def send(
        self, token: str, title: str, body: str, data: dict[str, str] | None = None
    ) -> bool:
        payload = {
            "token": token,
            "notification": {"title": title, "body": body},
            "data": {
                **(data or {}),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        }
        try:
            response = self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Notification delivery failed: {e}")
            return False
        return True

    def close(self) -> None:
        self._client.close()
