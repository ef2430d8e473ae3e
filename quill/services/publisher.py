"""Hands publish intents to the deferred queue."""

from __future__ import annotations

import logging

from quill.schemas.events import PublishEvent
from quill.services.queue import DeferredQueue

logger = logging.getLogger(__name__)


class PostPublisher:
    """Producer side of the ``post.publish`` queue."""

    def __init__(self, queue: DeferredQueue) -> None:
        self.queue = queue

    async def publish(self, event: PublishEvent) -> str:
        """Enqueue ``event``, due at its ``scheduled_for`` (or immediately).

        Raises:
            QueueError: The backend could not store the message
        """
        message_id = await self.queue.publish(
            event.encode(), not_before=event.scheduled_for
        )
        logger.info(
            "Queued publish event",
            extra={
                "message_id": message_id,
                "post_id": str(event.post_identifier),
                "scheduled_for": (
                    event.scheduled_for.isoformat() if event.scheduled_for else None
                ),
            },
        )
        return message_id
