"""
Notification dispatcher adapters (approval / denial messages).

Delivery is fire-and-forget from the workflow's point of view: adapters raise
NotificationError on failure and the workflow logs it as a warning without
touching the committed decision.

Backends:
  - log: writes the notification to the structured log (default, dev/tests)
  - webhook: POSTs JSON to NOTIFIER_WEBHOOK_URL, where a mail relay renders
    the email and the inline QR image
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx

from festgate.core.config import get_settings
from festgate.core.errors import NotificationError
from festgate.core.logging import get_logger

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"


class Notifier(ABC):
    """Interface for notification delivery."""

    @abstractmethod
    async def notify(self, user_id: int, kind: NotificationKind, payload: dict) -> None:
        """
        Deliver a notification.

        Args:
            user_id: Recipient (payload carries email and display name)
            kind: Template to render
            payload: Template data
        """
        pass


class LogNotifier(Notifier):
    async def notify(self, user_id: int, kind: NotificationKind, payload: dict) -> None:
        # The QR data URL is large; log everything else
        logger.info(
            "notification_sent",
            user_id=user_id,
            kind=kind.value,
            **{k: v for k, v in payload.items() if k != "qr_code"},
        )


class WebhookNotifier(Notifier):
    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def notify(self, user_id: int, kind: NotificationKind, payload: dict) -> None:
        body = {"user_id": user_id, "template": kind.value, "payload": payload}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"webhook delivery failed: {e}") from e

        logger.info("notification_sent", user_id=user_id, kind=kind.value, via="webhook")


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Configured notifier singleton (FastAPI dependency)."""
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.NOTIFIER_BACKEND == "webhook" and settings.NOTIFIER_WEBHOOK_URL:
            _notifier = WebhookNotifier(settings.NOTIFIER_WEBHOOK_URL, settings.NOTIFIER_TIMEOUT)
        else:
            _notifier = LogNotifier()
    return _notifier
