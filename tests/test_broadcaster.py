"""
Tests for the Event Broadcaster.

Covers:
- LifecycleEvent payloads and names
- Fan-out to connected observers
- Isolation from failing observers
- Initial events for new subscribers
- QueueObserver overflow behaviour
"""

from unittest.mock import MagicMock

import pytest

from pairline.session import (
    QR_EVENT,
    STATUS_EVENT,
    EventBroadcaster,
    LifecycleEvent,
    QueueObserver,
    SessionState,
)


class RecordingObserver:
    def __init__(self):
        self.events = []

    def deliver(self, event):
        self.events.append(event)


class FailingObserver:
    def deliver(self, event):
        raise RuntimeError("socket closed")


CONNECTED = LifecycleEvent(SessionState.READY, "Connected", identity="94771234567@c.us")
QR = LifecycleEvent(SessionState.PAIRING, "Please scan QR code", challenge="qr-1")


# =============================================================================
# LifecycleEvent Tests
# =============================================================================


class TestLifecycleEvent:
    """Tests for event names and payloads."""

    def test_qr_event(self):
        assert QR.name == QR_EVENT
        assert QR.to_payload() == {"qr": "qr-1"}

    def test_connected_event(self):
        assert CONNECTED.name == STATUS_EVENT
        assert CONNECTED.to_payload() == {"status": "Connected", "user": "94771234567@c.us"}

    def test_auth_failure_carries_message(self):
        event = LifecycleEvent(SessionState.AUTH_FAILED, "Auth Failure", detail="bad creds")
        assert event.to_payload() == {"status": "Auth Failure", "message": "bad creds"}

    def test_disconnect_carries_reason(self):
        event = LifecycleEvent(SessionState.DISCONNECTED, "Disconnected", detail="NAVIGATION")
        assert event.to_payload() == {"status": "Disconnected", "reason": "NAVIGATION"}

    def test_is_immutable(self):
        with pytest.raises(Exception):
            CONNECTED.status = "waiting"


# =============================================================================
# EventBroadcaster Tests
# =============================================================================


class TestEventBroadcaster:
    """Tests for publish/subscribe."""

    def test_publish_reaches_all_observers(self):
        broadcaster = EventBroadcaster()
        observers = [RecordingObserver() for _ in range(3)]
        for observer in observers:
            broadcaster.subscribe(observer)

        delivered = broadcaster.publish(CONNECTED)

        assert delivered == 3
        assert all(o.events == [CONNECTED] for o in observers)

    def test_publish_without_observers(self):
        broadcaster = EventBroadcaster()
        assert broadcaster.publish(CONNECTED) == 0

    def test_failing_observer_does_not_block_others(self):
        broadcaster = EventBroadcaster()
        first = RecordingObserver()
        last = RecordingObserver()
        broadcaster.subscribe(first)
        broadcaster.subscribe(FailingObserver())
        broadcaster.subscribe(last)

        delivered = broadcaster.publish(CONNECTED)

        assert delivered == 2
        assert first.events == [CONNECTED]
        assert last.events == [CONNECTED]

    def test_failing_observer_stays_connected(self):
        broadcaster = EventBroadcaster()
        broadcaster.subscribe(FailingObserver())

        broadcaster.publish(CONNECTED)

        assert broadcaster.observer_count == 1

    def test_unsubscribed_observer_gets_nothing(self):
        broadcaster = EventBroadcaster()
        observer = RecordingObserver()
        broadcaster.subscribe(observer)
        broadcaster.unsubscribe(observer)

        broadcaster.publish(CONNECTED)

        assert observer.events == []
        assert broadcaster.observer_count == 0

    def test_unsubscribe_unknown_is_noop(self):
        broadcaster = EventBroadcaster()
        broadcaster.unsubscribe(RecordingObserver())
        assert broadcaster.observer_count == 0

    def test_no_replay_for_late_subscribers(self):
        broadcaster = EventBroadcaster()
        broadcaster.publish(CONNECTED)

        observer = RecordingObserver()
        broadcaster.subscribe(observer)

        assert observer.events == []

    def test_initial_events_go_to_new_observer_only(self):
        broadcaster = EventBroadcaster()
        existing = RecordingObserver()
        broadcaster.subscribe(existing)

        newcomer = RecordingObserver()
        broadcaster.subscribe(newcomer, initial_events=[QR])

        assert newcomer.events == [QR]
        assert existing.events == []

    def test_double_subscribe_delivers_once(self):
        broadcaster = EventBroadcaster()
        observer = RecordingObserver()
        broadcaster.subscribe(observer)
        broadcaster.subscribe(observer)

        broadcaster.publish(CONNECTED)

        assert observer.events == [CONNECTED]

    def test_mock_observer(self):
        broadcaster = EventBroadcaster()
        observer = MagicMock()
        broadcaster.subscribe(observer)

        broadcaster.publish(QR)

        observer.deliver.assert_called_once_with(QR)

    def test_clear(self):
        broadcaster = EventBroadcaster()
        broadcaster.subscribe(RecordingObserver())
        broadcaster.clear()
        assert broadcaster.observer_count == 0


# =============================================================================
# QueueObserver Tests
# =============================================================================


class TestQueueObserver:
    """Tests for the asyncio.Queue backed observer."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self):
        observer = QueueObserver()
        observer.deliver(QR)
        observer.deliver(CONNECTED)

        assert await observer.next_event() == QR
        assert await observer.next_event() == CONNECTED

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_raising(self):
        observer = QueueObserver(maxsize=1)
        broadcaster = EventBroadcaster()
        other = RecordingObserver()
        broadcaster.subscribe(observer)
        broadcaster.subscribe(other)

        broadcaster.publish(QR)
        broadcaster.publish(CONNECTED)

        assert observer.pending() == 1
        assert observer.dropped == 1
        assert other.events == [QR, CONNECTED]
        assert await observer.next_event() == QR
