"""Tests for angkor_offline.events module."""

import threading

from angkor_offline.events import (
    ConnectivityEvent,
    ErrorEvent,
    EventEmitter,
    Indicator,
    IndicatorEvent,
    SyncEvent,
)
from angkor_offline.types import ConnectivityState, SyncStatus


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_decorator_registration(self):
        emitter = EventEmitter()
        received = []

        @emitter.on(ConnectivityEvent)
        def on_connectivity(event):
            received.append(event.new_state)

        emitter.emit(ConnectivityEvent(new_state=ConnectivityState.OFFLINE))
        assert received == [ConnectivityState.OFFLINE]

    def test_handlers_only_see_their_type(self):
        emitter = EventEmitter()
        received = []
        emitter.add_handler(SyncEvent, received.append)

        emitter.emit(IndicatorEvent(indicator=Indicator.OFFLINE_BANNER))
        emitter.emit(SyncEvent(status=SyncStatus.SYNCING))

        assert len(received) == 1
        assert received[0].status == SyncStatus.SYNCING

    def test_on_any_sees_everything(self):
        emitter = EventEmitter()
        received = []
        emitter.on_any(received.append)
        emitter.emit(IndicatorEvent())
        emitter.emit(ErrorEvent(error="x"))
        assert [type(e) for e in received] == [IndicatorEvent, ErrorEvent]

    def test_failing_handler_does_not_stop_others(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        emitter.add_handler(SyncEvent, broken)
        emitter.add_handler(SyncEvent, received.append)
        emitter.emit(SyncEvent())
        assert len(received) == 1

    def test_handler_may_remove_itself(self):
        emitter = EventEmitter()
        calls = []

        def once(event):
            calls.append(event)
            emitter.remove_handler(SyncEvent, once)

        emitter.add_handler(SyncEvent, once)
        emitter.emit(SyncEvent())
        emitter.emit(SyncEvent())
        assert len(calls) == 1

    def test_clear_and_count(self):
        emitter = EventEmitter()
        emitter.add_handler(SyncEvent, lambda e: None)
        emitter.add_handler(IndicatorEvent, lambda e: None)
        emitter.on_any(lambda e: None)
        assert emitter.handler_count() == 3
        assert emitter.handler_count(SyncEvent) == 1

        emitter.clear_handlers(SyncEvent)
        assert emitter.handler_count(SyncEvent) == 0

        emitter.clear_handlers()
        assert emitter.handler_count() == 0

    def test_concurrent_emit(self):
        """Emitting from several threads delivers every event."""
        emitter = EventEmitter()
        received = []
        lock = threading.Lock()

        def record(event):
            with lock:
                received.append(event)

        emitter.add_handler(SyncEvent, record)
        threads = [
            threading.Thread(target=lambda: [emitter.emit(SyncEvent()) for _ in range(50)])
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(received) == 200


class TestEventDefaults:
    """Event dataclass defaults."""

    def test_indicator_event(self):
        event = IndicatorEvent()
        assert event.indicator == Indicator.OFFLINE_BANNER
        assert event.visible is True
        assert event.message == ""
        assert event.timestamp > 0

    def test_indicators_are_page_widgets_only(self):
        """Sync progress travels on SyncEvent, not as an indicator."""
        assert {i.value for i in Indicator} == {
            "offline_banner", "offline_overlay", "online_toast", "checking", "still_offline",
        }

    def test_error_event_recoverable_by_default(self):
        assert ErrorEvent(error="probe failed").recoverable is True
