"""Standalone publish worker process (``quill-worker``).

Runs the same consumer the API starts in its lifespan, for deployments that
keep the API and the worker in separate processes (set
``PUBLISH_WORKER_ENABLED=false`` on the API and ``QUEUE_BACKEND=redis``).
"""

from __future__ import annotations

import asyncio
import logging
import signal

from quill.config import settings
from quill.database import SessionLocal
from quill.observability.logging import configure_logging
from quill.services.post_store import PostStore
from quill.services.publish_worker import PublishWorker
from quill.services.queue import build_publish_queue

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    queue = build_publish_queue(settings)
    worker = PublishWorker(
        queue,
        PostStore(),
        SessionLocal,
        poll_interval=settings.publish_poll_interval,
        batch_size=settings.publish_batch_size,
        max_attempts=settings.publish_max_attempts,
        retry_backoff=settings.publish_retry_backoff,
        max_backoff=settings.publish_max_backoff,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    if settings.queue_backend == "memory":
        logger.warning(
            "Standalone worker on the in-memory queue only sees its own messages"
        )

    worker.start()
    try:
        await stop.wait()
    finally:
        await worker.stop()
        await queue.close()


def main() -> None:
    configure_logging(settings.log_level.upper(), settings.log_format)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
