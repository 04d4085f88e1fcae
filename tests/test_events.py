"""Tests for the event bus."""
from uuid import uuid4

from agentflow_core.events import EpicChanged, EventBus


class TestEventBus:
    """Test publish/subscribe behaviour."""

    def test_fan_out_and_version(self):
        bus = EventBus()
        first, second = [], []
        bus.subscribe(first.append)
        bus.subscribe(second.append)

        event = EpicChanged(epic_id=uuid4(), change="created")
        bus.publish(event)

        assert first == [event]
        assert second == [event]
        assert bus.version == 1

    def test_unsubscribe_callable(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        unsubscribe()
        bus.publish(EpicChanged(epic_id=uuid4(), change="deleted"))

        assert received == []

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        bus.publish(EpicChanged(epic_id=uuid4(), change="updated"))

        assert len(received) == 1
