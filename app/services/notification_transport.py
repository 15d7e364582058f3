"""
Notification transports - delivery of events to a single recipient.

Delivery is fire-and-forget from the engine's point of view.
"""

from abc import ABC, abstractmethod
from app.models.notification import NotificationEvent
from typing import List
import asyncio
import logging

logger = logging.getLogger(__name__)


class NotificationTransport(ABC):

    @abstractmethod
    async def send(self, recipient_id: str, event: NotificationEvent) -> None:
        """Deliver one event. May raise; callers log and continue."""
        pass


class LoggingTransport(NotificationTransport):
    """Default transport: records events in memory and in the log."""

    def __init__(self):
        self.sent: List[NotificationEvent] = []

    async def send(self, recipient_id: str, event: NotificationEvent) -> None:
        self.sent.append(event.for_recipient(recipient_id))
        logger.info(f"🔔 [{event.event_type.value}] → {recipient_id}: {event.title}")


class FirebaseMessagingTransport(NotificationTransport):
    """
    Push delivery through Firebase Cloud Messaging.

    Each user subscribes their devices to the topic "user_{id}", so the
    engine never handles device tokens.
    """

    def __init__(self, topic_prefix: str = "user_"):
        from app.config.firebase import initialize_firebase

        initialize_firebase()
        self.topic_prefix = topic_prefix

    def _send_sync(self, recipient_id: str, event: NotificationEvent) -> str:
        from firebase_admin import messaging

        message = messaging.Message(
            notification=messaging.Notification(title=event.title, body=event.body),
            # FCM data values MUST be strings
            data={**event.data, "type": event.event_type.value},
            android=messaging.AndroidConfig(priority="high"),
            topic=f"{self.topic_prefix}{recipient_id}",
        )
        return messaging.send(message)

    async def send(self, recipient_id: str, event: NotificationEvent) -> None:
        message_id = await asyncio.to_thread(self._send_sync, recipient_id, event)
        logger.info(f"📨 FCM message {message_id} sent to {recipient_id}")
