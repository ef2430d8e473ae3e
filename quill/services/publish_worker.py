"""Consumer for the ``post.publish`` queue."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from asgi_correlation_id.context import correlation_id
from pydantic import ValidationError

from quill.observability.metrics import PUBLISH_EVENTS
from quill.schemas.events import PublishEvent
from quill.services.post_store import PostStore
from quill.services.queue import DeferredQueue, Delivery, QueueError
from quill.utils.clock import Clock, utc_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """How a single delivery was settled."""

    COMMITTED = "committed"
    NOOP = "noop"
    REJECTED = "rejected"
    DEFERRED = "deferred"
    REQUEUED = "requeued"
    DEAD_LETTERED = "dead_lettered"


class PublishWorker:
    """Claims due publish events and flips drafts to published.

    The flip is a conditional update that only matches drafts, so redelivered
    or stale events are harmless.
    """

    def __init__(
        self,
        queue: DeferredQueue,
        store: PostStore,
        session_factory: Callable[[], Session],
        *,
        poll_interval: float = 1.0,
        batch_size: int = 10,
        max_attempts: int = 10,
        retry_backoff: float = 2.0,
        max_backoff: float = 300.0,
        clock: Clock = utc_now,
    ) -> None:
        self.queue = queue
        self.store = store
        self.session_factory = session_factory
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.max_backoff = max_backoff
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name="publish-worker")
        return self._task

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop claiming, release held deliveries and wait for the loop."""
        self._stopping.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout)
        except TimeoutError:
            logger.warning("Publish worker did not stop in time; cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None

    async def run(self) -> None:
        logger.info(
            "Publish worker started",
            extra={"queue": self.queue.name, "batch_size": self.batch_size},
        )
        while not self._stopping.is_set():
            try:
                handled = await self.run_once()
            except QueueError:
                logger.exception("Publish queue unavailable")
                handled = 0
            except Exception:
                logger.exception("Publish worker iteration failed")
                handled = 0
            if not handled:
                await self._idle()
        logger.info("Publish worker stopped", extra={"queue": self.queue.name})

    async def run_once(self) -> int:
        """Recover expired leases, then claim and process one batch.

        Returns:
            Number of deliveries claimed
        """
        await self.queue.requeue_expired()
        deliveries = await self.queue.claim(self.batch_size)
        for index, delivery in enumerate(deliveries):
            if self._stopping.is_set():
                for pending in deliveries[index:]:
                    await pending.release()
                break
            await self.process(delivery)
        return len(deliveries)

    async def _idle(self) -> None:
        timeout = self.poll_interval
        try:
            due = await self.queue.next_due()
        except Exception:
            logger.warning("Could not read next due time", exc_info=True)
            due = None
        if due is not None:
            until_due = (due - self._clock()).total_seconds()
            timeout = max(0.0, min(timeout, until_due))
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout)
        except TimeoutError:
            pass

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_backoff * 2 ** (attempt - 1), self.max_backoff)

    async def process(self, delivery: Delivery) -> Outcome:
        """Handle one delivery and settle it with the queue."""
        token = correlation_id.set(delivery.message_id)
        try:
            outcome = await self._process(delivery)
        finally:
            correlation_id.reset(token)
        PUBLISH_EVENTS.labels(outcome.value).inc()
        return outcome

    async def _process(self, delivery: Delivery) -> Outcome:
        try:
            event = PublishEvent.decode(delivery.body)
        except ValidationError as exc:
            logger.error(
                "Dropping undecodable publish event",
                extra={"message_id": delivery.message_id, "error": str(exc)},
            )
            await delivery.reject()
            return Outcome.REJECTED

        now = self._clock()
        if event.scheduled_for is not None and event.scheduled_for > now:
            await delivery.defer(event.scheduled_for)
            return Outcome.DEFERRED

        post_id = str(event.post_identifier)
        try:
            rows = await asyncio.to_thread(self._publish, event, now)
        except Exception:
            if delivery.attempt >= self.max_attempts:
                logger.exception(
                    "Giving up on publish event",
                    extra={"post_id": post_id, "attempt": delivery.attempt},
                )
                await delivery.reject()
                return Outcome.DEAD_LETTERED
            delay = self._backoff(delivery.attempt)
            logger.warning(
                "Publish failed; retrying",
                exc_info=True,
                extra={
                    "post_id": post_id,
                    "attempt": delivery.attempt,
                    "retry_in": delay,
                },
            )
            await delivery.nack(delay)
            return Outcome.REQUEUED

        await delivery.ack()
        if rows == 0:
            logger.warning(
                "Publish event matched no draft post",
                extra={"post_id": post_id},
            )
            return Outcome.NOOP
        logger.info("Published post", extra={"post_id": post_id})
        return Outcome.COMMITTED

    def _publish(self, event: PublishEvent, published_at) -> int:
        db = self.session_factory()
        try:
            return self.store.publish_if_draft(db, event.post_identifier, published_at)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
