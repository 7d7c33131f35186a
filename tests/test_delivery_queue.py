"""Tests for the delayed delivery queue and its scheduler."""

import asyncio
import json
from unittest.mock import patch

import pytest

from murmur.app.exceptions import DeliveryAuthError, TransportError
from murmur.app.services.delivery import CredentialCache, DeliveryGateway
from murmur.app.services.delivery_queue import (
    AsyncioScheduler,
    DelayedDeliveryQueue,
    QueuedMessage,
)

from fakes import FakeSleep, ManualScheduler, RecordingTransport

HOUR = 3600


@pytest.fixture
def scheduler():
    scheduler = ManualScheduler()
    yield scheduler
    scheduler.discard()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


def make_queue(store, gateway, scheduler, clock, fake_sleep, rng, **kwargs):
    return DelayedDeliveryQueue(
        store,
        gateway,
        scheduler,
        min_delay=kwargs.pop("min_delay", HOUR),
        max_delay=kwargs.pop("max_delay", 6 * HOUR),
        safety_ttl=kwargs.pop("safety_ttl", 24 * HOUR),
        clock=clock,
        sleep=fake_sleep,
        rng=rng,
        **kwargs,
    )


@pytest.fixture
def queue(store, gateway, scheduler, clock, fake_sleep, rng):
    return make_queue(store, gateway, scheduler, clock, fake_sleep, rng)


async def _stored(store, message_id):
    raw = await store.get(f"msg_{message_id}")
    return QueuedMessage.from_json(raw) if raw is not None else None


class TestQueuedMessage:
    def test_json_round_trip_keeps_fields(self):
        message = QueuedMessage("abc", "text", 10.0, 20.0)
        data = json.loads(message.to_json())
        assert data == {
            "id": "abc",
            "transformed_text": "text",
            "queued_at": 10.0,
            "scheduled_for": 20.0,
            "delivery_attempted_at": None,
        }
        assert QueuedMessage.from_json(message.to_json()) == message
        assert message.key == "msg_abc"

    def test_malformed_record(self):
        with pytest.raises(ValueError):
            QueuedMessage.from_json('{"id": "abc"}')
        with pytest.raises(ValueError):
            QueuedMessage.from_json("not json")


class TestEnqueue:
    """Tests for enqueue scheduling."""

    @pytest.mark.asyncio
    async def test_delay_within_bounds(self, queue, clock):
        for _ in range(20):
            message = await queue.enqueue("hello")
            assert message.queued_at == clock.now
            assert clock.now + HOUR <= message.scheduled_for <= clock.now + 6 * HOUR

    @pytest.mark.asyncio
    async def test_record_persisted_with_safety_ttl(self, queue, store, clock):
        message = await queue.enqueue("hello")

        assert await _stored(store, message.id) == message
        clock.advance(24 * HOUR - 1)
        assert await store.get(message.key) is not None
        clock.advance(1)
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_only_transformed_text_is_stored(self, queue, store):
        message = await queue.enqueue("transformed words")
        raw = json.loads(await store.get(message.key))
        assert raw["transformed_text"] == "transformed words"
        assert set(raw) == {"id", "transformed_text", "queued_at", "scheduled_for", "delivery_attempted_at"}

    @pytest.mark.asyncio
    async def test_job_submitted(self, queue, scheduler):
        message = await queue.enqueue("hello")
        assert [name for name, _ in scheduler.jobs] == [f"deliver-{message.id}"]

    @pytest.mark.asyncio
    async def test_immediate_has_no_delay(self, queue, scheduler, transport, fake_sleep, store):
        message = await queue.enqueue("hello", immediate=True)
        assert message.scheduled_for == message.queued_at

        await scheduler.run_all()

        assert fake_sleep.calls == []
        assert len(transport.sent) == 1
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_fixed_delay(self, store, gateway, scheduler, clock, fake_sleep, rng):
        queue = make_queue(store, gateway, scheduler, clock, fake_sleep, rng, min_delay=30, max_delay=30)
        message = await queue.enqueue("hello")
        assert message.scheduled_for - message.queued_at == 30


class TestDelivery:
    """Tests for the single delivery attempt."""

    @pytest.mark.asyncio
    async def test_delayed_delivery_removes_record(self, queue, scheduler, transport, fake_sleep, store):
        message = await queue.enqueue("Thank you so much!")

        await scheduler.run_all()

        assert fake_sleep.calls == [pytest.approx(message.scheduled_for - message.queued_at)]
        assert len(transport.sent) == 1
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_failed_delivery_keeps_marked_record(self, store, issuer, clock, scheduler, fake_sleep, rng):
        transport = RecordingTransport(fail_statuses=[500])
        gateway = DeliveryGateway(CredentialCache(issuer, clock=clock), transport, "inbox@example.com")
        queue = make_queue(store, gateway, scheduler, clock, fake_sleep, rng)
        message = await queue.enqueue("hello", immediate=True)

        with pytest.raises(TransportError):
            await scheduler.run_all()

        stored = await _stored(store, message.id)
        assert stored is not None
        assert stored.delivery_attempted_at == clock.now
        assert scheduler.jobs == []

    @pytest.mark.asyncio
    async def test_failed_record_still_expires(self, store, issuer, clock, scheduler, fake_sleep, rng):
        transport = RecordingTransport(fail_statuses=[500])
        gateway = DeliveryGateway(CredentialCache(issuer, clock=clock), transport, "inbox@example.com")
        queue = make_queue(store, gateway, scheduler, clock, fake_sleep, rng)
        message = await queue.enqueue("hello")

        with pytest.raises(TransportError):
            await scheduler.run_all()

        clock.advance(24 * HOUR)
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_unauthorized_twice_keeps_record_until_safety_expiry(
        self, store, issuer, clock, scheduler, fake_sleep, rng
    ):
        transport = RecordingTransport(fail_statuses=[401, 401])
        gateway = DeliveryGateway(CredentialCache(issuer, clock=clock), transport, "inbox@example.com")
        queue = make_queue(store, gateway, scheduler, clock, fake_sleep, rng)
        message = await queue.enqueue("hello")

        with pytest.raises(DeliveryAuthError):
            await scheduler.run_all()

        assert transport.calls == 2
        assert transport.sent == []
        stored = await _stored(store, message.id)
        assert stored is not None
        assert stored.delivery_attempted_at is not None

        result = await queue.process_due()
        assert result.processed == 0
        assert transport.calls == 2

        clock.advance(24 * HOUR)
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_deliver_absent_record_is_noop(self, queue, transport):
        assert await queue.deliver("does-not-exist") is False
        assert transport.calls == 0

    @pytest.mark.asyncio
    async def test_already_attempted_is_not_retried(self, queue, store, transport, clock):
        message = QueuedMessage("m1", "text", clock.now, clock.now, delivery_attempted_at=clock.now)
        await store.put(message.key, message.to_json(), ttl_seconds=HOUR)

        assert await queue.deliver("m1") is False
        assert transport.calls == 0

    @pytest.mark.asyncio
    async def test_second_deliver_after_success_is_noop(self, queue, transport):
        message = await queue.enqueue("hello", immediate=True)
        assert await queue.deliver(message.id) is True
        assert await queue.deliver(message.id) is False
        assert len(transport.sent) == 1


class TestProcessDue:
    """Tests for the recovery sweep."""

    @pytest.mark.asyncio
    async def test_sweep_after_restart(self, store, gateway, clock, fake_sleep, rng, transport):
        lost_timers = ManualScheduler()
        first = make_queue(store, gateway, lost_timers, clock, fake_sleep, rng)
        message = await first.enqueue("hello")
        lost_timers.discard()

        # New process: timers are gone, the store is not
        clock.advance(message.scheduled_for - clock.now + 1)
        restarted = make_queue(store, gateway, ManualScheduler(), clock, fake_sleep, rng)
        result = await restarted.process_due()

        assert result.processed == 1
        assert result.errors == []
        assert len(transport.sent) == 1
        assert await store.get(message.key) is None

    @pytest.mark.asyncio
    async def test_sweep_rearms_messages_not_yet_due(self, store, gateway, clock, fake_sleep, rng, transport):
        lost_timers = ManualScheduler()
        await make_queue(store, gateway, lost_timers, clock, fake_sleep, rng).enqueue("hello")
        lost_timers.discard()
        scheduler = ManualScheduler()
        restarted = make_queue(store, gateway, scheduler, clock, fake_sleep, rng)

        result = await restarted.process_due()

        assert result.processed == 0
        assert result.scheduled == 1
        assert transport.calls == 0
        await scheduler.run_all()
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_sweep_skips_messages_with_live_timer(self, queue, clock, transport):
        await queue.enqueue("hello", immediate=True)

        result = await queue.process_due()

        assert result.processed == 0
        assert result.scheduled == 0
        assert transport.calls == 0

    @pytest.mark.asyncio
    async def test_sweep_skips_attempted_messages(self, queue, store, clock, transport):
        message = QueuedMessage("m1", "text", clock.now, clock.now, delivery_attempted_at=clock.now)
        await store.put(message.key, message.to_json(), ttl_seconds=HOUR)

        result = await queue.process_due()

        assert result.processed == 0
        assert transport.calls == 0

    @pytest.mark.asyncio
    async def test_sweep_collects_errors(self, store, issuer, clock, fake_sleep, rng):
        transport = RecordingTransport(fail_statuses=[500])
        gateway = DeliveryGateway(CredentialCache(issuer, clock=clock), transport, "inbox@example.com")
        queue = make_queue(store, gateway, ManualScheduler(), clock, fake_sleep, rng)
        message = QueuedMessage("m1", "text", clock.now, clock.now)
        await store.put(message.key, message.to_json(), ttl_seconds=HOUR)
        await store.put("msg_broken", "{not json", ttl_seconds=HOUR)

        result = await queue.process_due()

        assert result.processed == 0
        assert len(result.errors) == 2
        assert any(error.startswith("m1:") for error in result.errors)

    @pytest.mark.asyncio
    async def test_sweep_ignores_rate_limit_keys(self, queue, store, transport):
        await store.put("rate_limit:1.2.3.4:s", "3", ttl_seconds=60)
        result = await queue.process_due()
        assert result.processed == 0


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_snapshot_excludes_content(self, queue):
        await queue.enqueue("very private words")
        await queue.enqueue("more private words")

        entries = await queue.snapshot()

        assert len(entries) == 2
        assert "private" not in json.dumps(entries)
        assert entries[0]["scheduledFor"] <= entries[1]["scheduledFor"]
        assert all(entry["timerPending"] for entry in entries)


class TestQueueValidation:
    def test_safety_ttl_must_exceed_max_delay(self, store, gateway, scheduler):
        with pytest.raises(ValueError):
            DelayedDeliveryQueue(store, gateway, scheduler, min_delay=0, max_delay=100, safety_ttl=100)

    def test_max_delay_below_min_delay(self, store, gateway, scheduler):
        with pytest.raises(ValueError):
            DelayedDeliveryQueue(store, gateway, scheduler, min_delay=10, max_delay=5, safety_ttl=100)


class TestAsyncioScheduler:
    """Tests for the asyncio-backed scheduler."""

    @pytest.mark.asyncio
    async def test_tracks_and_drains_tasks(self):
        scheduler = AsyncioScheduler()
        done = []

        async def job():
            await asyncio.sleep(0)
            done.append(True)

        scheduler.submit(job(), name="job")
        assert scheduler.pending == 1
        await scheduler.drain()
        assert done == [True]
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged(self):
        scheduler = AsyncioScheduler()

        async def failing():
            raise TransportError("rejected", status=500)

        with patch("murmur.app.services.delivery_queue.logger") as mock_logger:
            scheduler.submit(failing(), name="deliver-x")
            await scheduler.drain()
            await asyncio.sleep(0)

        mock_logger.error.assert_called_once()
        assert "deliver-x" in mock_logger.error.call_args.args[0]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        scheduler = AsyncioScheduler()
        scheduler.submit(asyncio.sleep(3600), name="long")

        await scheduler.shutdown()

        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_tasks(self, store, gateway, clock, transport, rng):
        scheduler = AsyncioScheduler()
        queue = DelayedDeliveryQueue(
            store, gateway, scheduler, min_delay=0, max_delay=0.01, safety_ttl=60, clock=clock, rng=rng
        )
        message = await queue.enqueue("hello")

        await scheduler.drain()

        assert len(transport.sent) == 1
        assert await store.get(message.key) is None
