"""Tests for the cross-client relay and the debouncing dispatcher"""
import pytest

from chronoflow.client.relay import (
    LocalRelayHub, SOURCE_LOCAL_RELAY, SOURCE_PUSH, SyncClient, SyncEvent, SyncEventDispatcher,
)


class Recorder:
    def __init__(self):
        self.events = []

    def on_sync_event(self, event):
        self.events.append(event)


class ManualClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


class TestDispatcher:
    def test_collapses_repeats_of_one_type(self, clock):
        consumer = Recorder()
        dispatcher = SyncEventDispatcher(consumer, window=0.5, clock=clock)

        assert dispatcher.dispatch(SyncEvent("time-entries", 1, SOURCE_PUSH)) is True
        clock.now += 0.2
        assert dispatcher.dispatch(SyncEvent("time-entries", 2, SOURCE_LOCAL_RELAY)) is False
        clock.now += 0.4
        assert dispatcher.dispatch(SyncEvent("time-entries", 3, SOURCE_PUSH)) is True

        assert [e.timestamp for e in consumer.events] == [1, 3]

    def test_types_do_not_suppress_each_other(self, clock):
        consumer = Recorder()
        dispatcher = SyncEventDispatcher(consumer, window=0.5, clock=clock)

        dispatcher.dispatch(SyncEvent("time-entries", 1, SOURCE_PUSH))
        dispatcher.dispatch(SyncEvent("categories", 1, SOURCE_PUSH))
        dispatcher.dispatch(SyncEvent("all", 1, SOURCE_LOCAL_RELAY))

        assert [e.type for e in consumer.events] == ["time-entries", "categories", "all"]


class TestLocalRelayHub:
    def test_publish_skips_the_sender(self):
        hub = LocalRelayHub()
        received = {"a": [], "b": [], "c": []}
        a = hub.open("chan", received["a"].append)
        hub.open("chan", received["b"].append)
        hub.open("other", received["c"].append)

        event = SyncEvent("all", 1, SOURCE_LOCAL_RELAY)
        assert a.post(event) == 1

        assert received == {"a": [], "b": [event], "c": []}

    def test_closed_channel_receives_nothing(self):
        hub = LocalRelayHub()
        received = []
        a = hub.open("chan", lambda e: None)
        b = hub.open("chan", received.append)
        b.close()

        assert a.post(SyncEvent("all", 1, SOURCE_LOCAL_RELAY)) == 0
        assert received == []
        assert hub.subscriber_count("chan") == 1


class TestSyncClient:
    def _tabs(self, n, clock):
        hub = LocalRelayHub()
        tabs = []
        for _ in range(n):
            consumer = Recorder()
            client = SyncClient(consumer=consumer, hub=hub, clock=clock)
            client.start()
            tabs.append((client, consumer))
        return tabs

    def test_local_change_reaches_siblings_only(self, clock):
        (origin, origin_seen), (sibling, sibling_seen) = self._tabs(2, clock)

        origin.broadcast_change("time-entries")

        assert origin_seen.events == []
        assert [(e.type, e.source) for e in sibling_seen.events] == [("time-entries", SOURCE_LOCAL_RELAY)]

    def test_push_event_is_applied_and_relayed(self, clock):
        (tab1, seen1), (tab2, seen2), (tab3, seen3) = self._tabs(3, clock)

        tab1.on_push_event("categories", 42)

        assert [(e.type, e.source) for e in seen1.events] == [("categories", SOURCE_PUSH)]
        assert [(e.type, e.source) for e in seen2.events] == [("categories", SOURCE_LOCAL_RELAY)]
        assert [(e.type, e.source) for e in seen3.events] == [("categories", SOURCE_LOCAL_RELAY)]

    def test_push_and_relay_of_same_change_refresh_once(self, clock):
        (tab1, seen1), (tab2, seen2) = self._tabs(2, clock)

        # both tabs get the server push; each relays it to the other
        tab1.on_push_event("time-entries", 1)
        clock.now += 0.01
        tab2.on_push_event("time-entries", 1)

        assert len(seen1.events) == 1
        assert len(seen2.events) == 1

    def test_unknown_type_rejected(self, clock):
        (tab, _), = self._tabs(1, clock)
        with pytest.raises(ValueError):
            tab.broadcast_change("everything")

    def test_close_leaves_the_channel(self, clock):
        (tab1, _), (tab2, seen2) = self._tabs(2, clock)
        tab2.close()
        tab1.broadcast_change("all")
        assert seen2.events == []
