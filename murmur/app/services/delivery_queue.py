"""Delayed delivery queue.

Transformed messages are persisted under ``msg_<id>`` keys and handed to the
delivery gateway after a random delay. A message moves through
Queued -> Delivering -> Delivered (record removed); a record nobody delivers
disappears with its safety TTL.

Delivery is at most once: ``delivery_attempted_at`` is written before the
gateway is called, and a record carrying it is never attempted again. A
failed send leaves the record in place until the safety TTL removes it.
"""

import asyncio
import json
import math
import random
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional

from murmur.app.core.kv_store import KVStore
from murmur.app.core.logging import get_log_context, get_logger
from murmur.app.exceptions import DeliveryError
from murmur.app.services.delivery import DeliveryGateway

logger = get_logger(__name__)

KEY_PREFIX = "msg_"


@dataclass
class QueuedMessage:
    """A persisted, not yet delivered message."""
    id: str
    transformed_text: str
    queued_at: float
    scheduled_for: float
    delivery_attempted_at: Optional[float] = None

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}{self.id}"

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "QueuedMessage":
        """Parse a stored record.

        Raises:
            ValueError: If the record is not a valid queued message
        """
        try:
            data = json.loads(raw)
            return cls(
                id=data["id"],
                transformed_text=data["transformed_text"],
                queued_at=float(data["queued_at"]),
                scheduled_for=float(data["scheduled_for"]),
                delivery_attempted_at=data.get("delivery_attempted_at"),
            )
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed queued message: {e}") from e


@dataclass
class SweepResult:
    processed: int = 0
    scheduled: int = 0
    errors: List[str] = field(default_factory=list)


class DeliveryScheduler(ABC):
    """Runs background delivery jobs on behalf of the queue."""

    @abstractmethod
    def submit(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> None:
        """Start coro in the background. Failures go to the scheduler's log."""

    async def shutdown(self, cancel: bool = True) -> None:
        """Stop or drain outstanding jobs."""


class AsyncioScheduler(DeliveryScheduler):
    """Scheduler backed by asyncio tasks on the running loop.

    Every task is tracked until it finishes so it is not garbage collected
    mid-flight, and so shutdown can reach it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait for every outstanding task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, cancel: bool = True) -> None:
        if not cancel:
            await self.drain()
            return
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info(f"Cancelled {len(tasks)} pending delivery task(s)")


class DelayedDeliveryQueue:
    """Persists transformed messages and delivers each after a random delay.

    Args:
        store: Key-value store holding queued messages
        gateway: Delivery gateway used for the single send attempt
        scheduler: Runs the delayed delivery jobs
        min_delay: Shortest delay in seconds
        max_delay: Longest delay in seconds
        safety_ttl: Lifetime of a stored record; must exceed max_delay
        clock: Time source, in epoch seconds
        sleep: Coroutine function used to wait out the delay
        rng: Random source for delays
    """

    def __init__(
        self,
        store: KVStore,
        gateway: DeliveryGateway,
        scheduler: DeliveryScheduler,
        min_delay: float = 3600,
        max_delay: float = 6 * 3600,
        safety_ttl: int = 24 * 3600,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        if safety_ttl <= max_delay:
            raise ValueError("safety_ttl must exceed max_delay")
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.safety_ttl = safety_ttl
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        # Ids with a live in-process timer
        self._pending: set[str] = set()

    def _pick_delay(self) -> float:
        if self.max_delay <= self.min_delay:
            return self.min_delay
        return self._rng.uniform(self.min_delay, self.max_delay)

    def _remaining_ttl(self, message: QueuedMessage) -> int:
        return max(1, math.ceil(message.queued_at + self.safety_ttl - self._clock()))

    async def enqueue(self, transformed_text: str, immediate: bool = False) -> QueuedMessage:
        """Persist a message and schedule its delivery.

        Raises:
            StoreError: If the record cannot be written; nothing is scheduled
        """
        now = self._clock()
        delay = 0.0 if immediate else self._pick_delay()
        message = QueuedMessage(
            id=str(uuid.uuid4()),
            transformed_text=transformed_text,
            queued_at=now,
            scheduled_for=now + delay,
        )
        await self.store.put(message.key, message.to_json(), ttl_seconds=self.safety_ttl)
        self._schedule(message)

        logger.info(f"Message queued for delivery in {delay:.0f}s")
        return message

    def _schedule(self, message: QueuedMessage) -> None:
        self._pending.add(message.id)
        self.scheduler.submit(
            self._deliver_after(message.id, message.scheduled_for),
            name=f"deliver-{message.id}",
        )

    async def _deliver_after(self, message_id: str, scheduled_for: float) -> None:
        try:
            wait = scheduled_for - self._clock()
            if wait > 0:
                await self._sleep(wait)
            await self.deliver(message_id)
        finally:
            self._pending.discard(message_id)

    async def _load(self, message_id: str) -> Optional[QueuedMessage]:
        raw = await self.store.get(f"{KEY_PREFIX}{message_id}")
        if raw is None:
            return None
        return QueuedMessage.from_json(raw)

    async def deliver(self, message_id: str) -> bool:
        """Make the single delivery attempt for a queued message.

        Returns:
            True if the message was sent and its record removed, False if
            there was nothing to do

        Raises:
            DeliveryError: If the send failed; the record stays marked as
                attempted
        """
        context = get_log_context(message_id=message_id)
        message = await self._load(message_id)
        if message is None:
            logger.debug("Queued message no longer present", extra=context)
            return False
        if message.delivery_attempted_at is not None:
            logger.warning("Delivery already attempted, not retrying", extra=context)
            return False

        message.delivery_attempted_at = self._clock()
        await self.store.put(
            message.key, message.to_json(), ttl_seconds=self._remaining_ttl(message)
        )

        try:
            await self.gateway.send(message.transformed_text)
        except DeliveryError as e:
            logger.error(f"Delivery failed: {e.message}", extra=context)
            raise

        await self.store.delete(message.key)
        logger.info("Message delivered", extra=context)
        return True

    async def process_due(self) -> SweepResult:
        """Sweep stored messages that no in-process timer owns.

        Due messages are delivered now; messages not yet due get a new
        timer. Messages already attempted are left for the safety TTL.
        """
        result = SweepResult()
        now = self._clock()

        for key in await self.store.list_keys(KEY_PREFIX):
            message_id = key[len(KEY_PREFIX):]
            if message_id in self._pending:
                continue
            try:
                message = await self._load(message_id)
            except ValueError as e:
                result.errors.append(f"{message_id}: {e}")
                continue
            if message is None or message.delivery_attempted_at is not None:
                continue

            if message.scheduled_for > now:
                self._schedule(message)
                result.scheduled += 1
                continue

            try:
                if await self.deliver(message_id):
                    result.processed += 1
            except DeliveryError as e:
                result.errors.append(f"{message_id}: {e.message}")

        if result.processed or result.scheduled or result.errors:
            logger.info(
                f"Queue sweep: {result.processed} delivered, "
                f"{result.scheduled} rescheduled, {len(result.errors)} failed"
            )
        return result

    async def snapshot(self) -> List[Dict[str, Any]]:
        """Ids and schedule of stored messages, without their content."""
        entries = []
        for key in await self.store.list_keys(KEY_PREFIX):
            message_id = key[len(KEY_PREFIX):]
            try:
                message = await self._load(message_id)
            except ValueError:
                entries.append({"id": message_id, "malformed": True})
                continue
            if message is None:
                continue
            entries.append({
                "id": message.id,
                "queuedAt": int(message.queued_at),
                "scheduledFor": int(message.scheduled_for),
                "deliveryAttempted": message.delivery_attempted_at is not None,
                "timerPending": message.id in self._pending,
            })
        return sorted(entries, key=lambda entry: entry.get("scheduledFor", 0))
