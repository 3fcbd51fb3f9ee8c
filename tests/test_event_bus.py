"""Tests for the in-memory EventBus and the post-commit DeferredPublisher."""

from crossroads.core.event_bus import DeferredPublisher, EventBus

STATE_CHANGED = "training.state_changed"
RESOLVED = "training.assignment_resolved"


class TestPublish:
    async def test_nobody_listening(self):
        bus = EventBus()
        assert await bus.publish(STATE_CHANGED, {"training_id": 1}) == 0

    async def test_typed_subscriber_gets_envelope(self):
        bus = EventBus()
        async with bus.subscribe(STATE_CHANGED) as sub:
            await bus.publish(STATE_CHANGED, {"training_id": 3, "to_state": "closed"})
            event = await sub.get(timeout=1.0)

        assert event == {
            "type": STATE_CHANGED,
            "data": {"training_id": 3, "to_state": "closed"},
        }

    async def test_typed_subscriber_ignores_other_types(self):
        bus = EventBus()
        async with bus.subscribe(RESOLVED) as sub:
            await bus.publish(STATE_CHANGED, {"training_id": 1})
            assert await sub.get(timeout=0.05) is None

    async def test_wildcard_sees_every_type_in_order(self):
        bus = EventBus()
        async with bus.subscribe() as sub:
            await bus.publish(STATE_CHANGED, {"training_id": 1})
            await bus.publish(RESOLVED, {"training_id": 1})
            first = await sub.get(timeout=1.0)
            second = await sub.get(timeout=1.0)

        assert [first["type"], second["type"]] == [STATE_CHANGED, RESOLVED]

    async def test_typed_and_wildcard_both_counted(self):
        bus = EventBus()
        async with bus.subscribe(STATE_CHANGED), bus.subscribe(None):
            assert await bus.publish(STATE_CHANGED, {}) == 2


class TestSubscriptions:
    async def test_count_tracks_context(self):
        bus = EventBus()
        async with bus.subscribe(STATE_CHANGED):
            async with bus.subscribe(None):
                assert bus.subscriber_count == 2
            assert bus.subscriber_count == 1
        assert bus.subscriber_count == 0

    async def test_slow_subscriber_drops(self):
        bus = EventBus()
        async with bus.subscribe(RESOLVED, max_size=1) as sub:
            assert await bus.publish(RESOLVED, {"n": 1}) == 1
            assert await bus.publish(RESOLVED, {"n": 2}) == 0
            kept = await sub.get(timeout=1.0)
            assert kept["data"]["n"] == 1

    async def test_async_iteration(self):
        bus = EventBus()
        async with bus.subscribe(STATE_CHANGED) as sub:
            await bus.publish(STATE_CHANGED, {"n": 7})
            async for event in sub:
                assert event["data"]["n"] == 7
                break


class TestDeferredPublisher:
    async def test_holds_until_flush(self):
        bus = EventBus()
        outbox = DeferredPublisher(bus)
        async with bus.subscribe(None) as sub:
            assert await outbox.publish(STATE_CHANGED, {"training_id": 1}) == 0
            assert await sub.get(timeout=0.05) is None

            assert await outbox.flush() == 1
            event = await sub.get(timeout=1.0)
            assert event["data"]["training_id"] == 1

    async def test_flush_keeps_order_and_empties(self):
        bus = EventBus()
        outbox = DeferredPublisher(bus)
        await outbox.publish(STATE_CHANGED, {"n": 1})
        await outbox.publish(RESOLVED, {"n": 2})
        async with bus.subscribe(None) as sub:
            await outbox.flush()
            types = [(await sub.get(timeout=1.0))["type"] for _ in range(2)]
            assert types == [STATE_CHANGED, RESOLVED]
            assert await outbox.flush() == 0

    async def test_discard_drops_pending(self):
        bus = EventBus()
        outbox = DeferredPublisher(bus)
        await outbox.publish(STATE_CHANGED, {"n": 1})
        outbox.discard()
        async with bus.subscribe(None) as sub:
            assert await outbox.flush() == 0
            assert await sub.get(timeout=0.05) is None
