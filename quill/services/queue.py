"""Durable deferred-delivery queues.

A message is published with an optional ``not_before`` instant and stays in a
time-ordered index until it is due. ``claim`` hands due messages to a consumer
under a visibility lease; the consumer settles each delivery with ``ack``,
``nack`` (redeliver after a delay), ``defer`` (redeliver at an instant),
``release`` (redeliver now) or ``reject`` (dead-letter). Deliveries whose lease
runs out without being settled are redelivered by ``requeue_expired``, so
delivery is at-least-once.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from quill.config import Settings
from quill.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Transport failure talking to the queue backend."""


@dataclass
class Delivery:
    """One claimed message awaiting settlement."""

    message_id: str
    body: str
    attempt: int
    queue: DeferredQueue = field(repr=False)

    async def ack(self) -> None:
        await self.queue.ack(self.message_id)

    async def nack(self, delay: float = 0.0) -> None:
        """Count a failed attempt and redeliver after ``delay`` seconds."""
        await self.queue.nack(self.message_id, delay)

    async def defer(self, until: datetime) -> None:
        """Redeliver at ``until`` without counting a failed attempt."""
        await self.queue.defer(self.message_id, until)

    async def release(self) -> None:
        """Hand the message back unprocessed for immediate redelivery."""
        await self.queue.defer(self.message_id, self.queue.now())

    async def reject(self) -> None:
        """Drop the message for good; it is kept in the dead-letter store."""
        await self.queue.reject(self.message_id, self.body)


class DeferredQueue(ABC):
    """Named queue whose messages become visible at a due time."""

    def __init__(
        self,
        name: str,
        *,
        visibility_timeout: float = 60.0,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.visibility_timeout = visibility_timeout
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    async def publish(self, body: str, *, not_before: datetime | None = None) -> str:
        """Store a message, due at ``not_before`` (or now); return its id."""

    @abstractmethod
    async def claim(self, limit: int = 10) -> list[Delivery]:
        """Lease up to ``limit`` due messages, earliest due first."""

    @abstractmethod
    async def next_due(self) -> datetime | None:
        """Due time of the earliest waiting message, if any."""

    @abstractmethod
    async def requeue_expired(self) -> int:
        """Make deliveries with a lapsed lease visible again."""

    @abstractmethod
    async def ack(self, message_id: str) -> None: ...

    @abstractmethod
    async def nack(self, message_id: str, delay: float = 0.0) -> None: ...

    @abstractmethod
    async def defer(self, message_id: str, until: datetime) -> None: ...

    @abstractmethod
    async def reject(self, message_id: str, body: str) -> None: ...

    @abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        return None


@dataclass
class _Message:
    body: str
    failures: int = 0


class MemoryDeferredQueue(DeferredQueue):
    """Single-process queue backed by a min-heap keyed on due time.

    Messages live only as long as the process; use it for development and
    tests. Only the newest ``max_dead_letters`` rejected bodies are kept.
    """

    def __init__(
        self,
        name: str,
        *,
        visibility_timeout: float = 60.0,
        max_dead_letters: int = 1000,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(name, visibility_timeout=visibility_timeout, clock=clock)
        self._heap: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._messages: dict[str, _Message] = {}
        self._inflight: dict[str, float] = {}
        self.dead_letters: deque[str] = deque(maxlen=max_dead_letters)

    def _push(self, message_id: str, due: float) -> None:
        heapq.heappush(self._heap, (due, next(self._seq), message_id))

    def __len__(self) -> int:
        return len(self._messages)

    async def publish(self, body: str, *, not_before: datetime | None = None) -> str:
        message_id = uuid4().hex
        self._messages[message_id] = _Message(body)
        self._push(message_id, (not_before or self.now()).timestamp())
        return message_id

    async def claim(self, limit: int = 10) -> list[Delivery]:
        now = self.now().timestamp()
        deliveries: list[Delivery] = []
        while self._heap and self._heap[0][0] <= now and len(deliveries) < limit:
            _, _, message_id = heapq.heappop(self._heap)
            message = self._messages.get(message_id)
            if message is None:
                continue
            self._inflight[message_id] = now + self.visibility_timeout
            deliveries.append(
                Delivery(message_id, message.body, message.failures + 1, self)
            )
        return deliveries

    async def next_due(self) -> datetime | None:
        if not self._heap:
            return None
        return datetime.fromtimestamp(self._heap[0][0], UTC)

    async def requeue_expired(self) -> int:
        now = self.now().timestamp()
        expired = [mid for mid, lease in self._inflight.items() if lease <= now]
        for message_id in expired:
            del self._inflight[message_id]
            self._push(message_id, now)
        return len(expired)

    async def ack(self, message_id: str) -> None:
        self._inflight.pop(message_id, None)
        self._messages.pop(message_id, None)

    async def nack(self, message_id: str, delay: float = 0.0) -> None:
        if self._inflight.pop(message_id, None) is None:
            return
        self._messages[message_id].failures += 1
        self._push(message_id, self.now().timestamp() + delay)

    async def defer(self, message_id: str, until: datetime) -> None:
        if self._inflight.pop(message_id, None) is None:
            return
        self._push(message_id, until.timestamp())

    async def reject(self, message_id: str, body: str) -> None:
        self._inflight.pop(message_id, None)
        self._messages.pop(message_id, None)
        self.dead_letters.append(body)

    async def ping(self) -> bool:
        return True


# KEYS[1] due zset, KEYS[2] inflight zset; ARGV[1] now, ARGV[2] limit,
# ARGV[3] lease deadline
_CLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
for _, id in ipairs(ids) do
  redis.call('ZREM', KEYS[1], id)
  redis.call('ZADD', KEYS[2], ARGV[3], id)
end
return ids
"""

# KEYS[1] inflight zset, KEYS[2] due zset; ARGV[1] now
_REQUEUE_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
for _, id in ipairs(ids) do
  redis.call('ZREM', KEYS[1], id)
  redis.call('ZADD', KEYS[2], ARGV[1], id)
end
return #ids
"""


class RedisDeferredQueue(DeferredQueue):
    """Queue stored in Redis; safe for several consumer processes.

    Keys, for a queue named ``post.publish``:

    - ``post.publish:due`` sorted set of message ids scored by due time
    - ``post.publish:inflight`` sorted set of leased ids scored by lease deadline
    - ``post.publish:bodies`` / ``post.publish:failures`` hashes by id
    - ``post.publish:dead`` list of rejected bodies
    """

    def __init__(
        self,
        client: redis.Redis,
        name: str,
        *,
        visibility_timeout: float = 60.0,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(name, visibility_timeout=visibility_timeout, clock=clock)
        self._redis = client
        self.due_key = f"{name}:due"
        self.inflight_key = f"{name}:inflight"
        self.bodies_key = f"{name}:bodies"
        self.failures_key = f"{name}:failures"
        self.dead_key = f"{name}:dead"
        self._claim_script = client.register_script(_CLAIM_SCRIPT)
        self._requeue_script = client.register_script(_REQUEUE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, name: str, **kwargs) -> RedisDeferredQueue:
        return cls(redis.Redis.from_url(url, decode_responses=True), name, **kwargs)

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except RedisError as exc:
            raise QueueError(f"Redis {action} failed on {self.name}: {exc}") from exc

    async def publish(self, body: str, *, not_before: datetime | None = None) -> str:
        message_id = uuid4().hex
        due = (not_before or self.now()).timestamp()
        with self._errors("publish"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(self.bodies_key, message_id, body)
                pipe.zadd(self.due_key, {message_id: due})
                await pipe.execute()
        return message_id

    async def claim(self, limit: int = 10) -> list[Delivery]:
        now = self.now().timestamp()
        with self._errors("claim"):
            ids = await self._claim_script(
                keys=[self.due_key, self.inflight_key],
                args=[now, limit, now + self.visibility_timeout],
            )
            if not ids:
                return []
            bodies = await self._redis.hmget(self.bodies_key, ids)
            failures = await self._redis.hmget(self.failures_key, ids)

        deliveries: list[Delivery] = []
        for message_id, body, failed in zip(ids, bodies, failures):
            if body is None:
                # Acked by a consumer whose lease had already lapsed.
                with self._errors("claim"):
                    await self._redis.zrem(self.inflight_key, message_id)
                continue
            deliveries.append(
                Delivery(message_id, body, int(failed or 0) + 1, self)
            )
        return deliveries

    async def next_due(self) -> datetime | None:
        with self._errors("peek"):
            head = await self._redis.zrange(self.due_key, 0, 0, withscores=True)
        if not head:
            return None
        _, score = head[0]
        return datetime.fromtimestamp(float(score), UTC)

    async def requeue_expired(self) -> int:
        with self._errors("requeue"):
            count = await self._requeue_script(
                keys=[self.inflight_key, self.due_key],
                args=[self.now().timestamp()],
            )
        if count:
            logger.warning(
                "Requeued deliveries with expired leases",
                extra={"queue": self.name, "count": count},
            )
        return int(count)

    async def ack(self, message_id: str) -> None:
        with self._errors("ack"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.inflight_key, message_id)
                pipe.hdel(self.bodies_key, message_id)
                pipe.hdel(self.failures_key, message_id)
                await pipe.execute()

    async def nack(self, message_id: str, delay: float = 0.0) -> None:
        due = self.now().timestamp() + delay
        with self._errors("nack"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.inflight_key, message_id)
                pipe.hincrby(self.failures_key, message_id, 1)
                pipe.zadd(self.due_key, {message_id: due})
                await pipe.execute()

    async def defer(self, message_id: str, until: datetime) -> None:
        with self._errors("defer"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.inflight_key, message_id)
                pipe.zadd(self.due_key, {message_id: until.timestamp()})
                await pipe.execute()

    async def reject(self, message_id: str, body: str) -> None:
        with self._errors("reject"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.inflight_key, message_id)
                pipe.hdel(self.bodies_key, message_id)
                pipe.hdel(self.failures_key, message_id)
                pipe.rpush(self.dead_key, body)
                await pipe.execute()

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError:
            logger.exception("Redis ping failed")
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def build_publish_queue(settings: Settings) -> DeferredQueue:
    """Create the publish queue selected by ``QUEUE_BACKEND``."""
    if settings.queue_backend == "redis":
        return RedisDeferredQueue.from_url(
            settings.redis_url,
            settings.publish_queue_name,
            visibility_timeout=settings.publish_visibility_timeout,
        )
    return MemoryDeferredQueue(
        settings.publish_queue_name,
        visibility_timeout=settings.publish_visibility_timeout,
    )
