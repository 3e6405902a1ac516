from __future__ import annotations

import logging
from typing import Any

from opentelemetry import trace

from jobchat.services.repository import ConversationContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NEW_MESSAGE = "NEW_MESSAGE"


def build_new_message_notification(message: dict[str, Any], context: ConversationContext) -> dict[str, Any]:
    return {
        "recipient_id": message["recipient_id"],
        "recipient_kind": message["recipient_kind"],
        "type": NEW_MESSAGE,
        "title": "New Message",
        "message": f'You have a new message regarding the application for "{context.job_title}"',
        "metadata": {
            "message_id": message["id"],
            "conversation_id": context.conversation_id,
            "job_id": context.job_id,
            "job_title": context.job_title,
            "sender_id": message["sender_id"],
            "sender_kind": message["sender_kind"],
        },
    }


class NotificationEmitter:
    """Records notifications for message recipients.

    Emission never fails the caller: store errors are logged and ``None`` (or an
    empty list for batches) is returned instead.
    """

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def emit_new_message(self, message: dict[str, Any], context: ConversationContext) -> dict[str, Any] | None:
        with tracer.start_as_current_span("notifications.emit_new_message") as span:
            span.set_attribute("message.id", message["id"])
            notification = build_new_message_notification(message, context)
            try:
                return await self.repository.create_notification(notification)
            except Exception:
                logger.exception(
                    "failed to create notification message_id=%s recipient=%s",
                    message["id"],
                    message["recipient_id"],
                )
                return None

    async def emit_batch(self, notifications: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not notifications:
            return []
        try:
            return await self.repository.create_notifications(notifications)
        except Exception:
            logger.exception("failed to create notification batch size=%s", len(notifications))
            return []
