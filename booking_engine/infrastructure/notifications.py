"""
Outbound customer notifications.

Email/SMS rendering lives in a separate notification service; the engine
only hands it ``(customer_id, kind, payload)``.  Delivery is best effort:
callers log and swallow failures, a booking never fails because a
confirmation could not be sent.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from booking_engine.config import settings
from booking_engine.domain.enums import NotificationKind

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    async def send(
        self, customer_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None: ...


class LoggingNotificationSender:
    """Used when no notification service is configured."""

    async def send(
        self, customer_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        logger.info(
            "Notification %s for customer %s: %s", kind.value, customer_id, payload
        )


class WebhookNotificationSender:
    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout = timeout_seconds

    async def send(
        self, customer_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                self.url,
                json={
                    "customer_id": customer_id,
                    "template": kind.value,
                    "payload": payload,
                },
            )
            resp.raise_for_status()


def build_notification_sender() -> NotificationSender:
    if settings.notification_webhook_url:
        return WebhookNotificationSender(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LoggingNotificationSender()
