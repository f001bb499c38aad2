"""
Client-side sync: one dispatcher fed by two sources.

* the server push stream (PushStreamReader, source "push")
* a same-process relay channel shared by sibling clients (source
  "local-relay"), the in-process counterpart of a browser BroadcastChannel

Both sources deliver the same SyncEvent shape. The dispatcher collapses
repeats of the same type within a short window, so a change that arrives
over the push stream and from two siblings triggers one refresh.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from chronoflow.infrastructure.sync.wire import SYNC_TYPES
from chronoflow.utils.timestamps import epoch_millis

logger = logging.getLogger(__name__)

CHANNEL_NAME = "chronoflow-sync"
SOURCE_PUSH = "push"
SOURCE_LOCAL_RELAY = "local-relay"
DEFAULT_DEBOUNCE_SECONDS = 0.5


@dataclass(frozen=True)
class SyncEvent:
    type: str
    timestamp: int
    source: str


class SyncEventConsumer(Protocol):
    def on_sync_event(self, event: SyncEvent) -> None: ...


# --- relay ------------------------------------------------------------------

class RelayChannel:
    """One subscriber's handle on a named channel."""

    def __init__(self, hub: "LocalRelayHub", name: str, on_message: Callable[[SyncEvent], None]):
        self.hub = hub
        self.name = name
        self.on_message = on_message
        self.closed = False

    def post(self, event: SyncEvent) -> int:
        """Deliver to every other open channel with the same name."""
        if self.closed:
            return 0
        return self.hub.publish(self, event)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.hub.unsubscribe(self)


class LocalRelayHub:
    """
    Named in-process broadcast channels. A publisher never receives its own
    message, matching BroadcastChannel semantics.
    """

    def __init__(self):
        self._channels: Dict[str, List[RelayChannel]] = {}
        self._lock = threading.Lock()

    def open(self, name: str, on_message: Callable[[SyncEvent], None]) -> RelayChannel:
        channel = RelayChannel(self, name, on_message)
        with self._lock:
            self._channels.setdefault(name, []).append(channel)
        return channel

    def unsubscribe(self, channel: RelayChannel) -> None:
        with self._lock:
            members = self._channels.get(channel.name, [])
            if channel in members:
                members.remove(channel)
            if not members:
                self._channels.pop(channel.name, None)

    def publish(self, sender: RelayChannel, event: SyncEvent) -> int:
        with self._lock:
            targets = [c for c in self._channels.get(sender.name, []) if c is not sender]
        delivered = 0
        for channel in targets:
            try:
                channel.on_message(event)
                delivered += 1
            except Exception:
                logger.exception("Relay subscriber failed on channel %s", sender.name)
        return delivered

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._channels.get(name, []))


# --- dispatcher ---------------------------------------------------------------

class SyncEventDispatcher:
    """
    Forwards SyncEvents to the consumer, dropping an event when another of
    the same type was forwarded less than `window` seconds ago. Types are
    debounced independently.
    """

    def __init__(
        self,
        consumer: SyncEventConsumer,
        window: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.consumer = consumer
        self.window = window
        self.clock = clock
        self._last_forwarded: Dict[str, float] = {}
        self._lock = threading.Lock()

    def dispatch(self, event: SyncEvent) -> bool:
        """Returns True if the event reached the consumer."""
        now = self.clock()
        with self._lock:
            last = self._last_forwarded.get(event.type)
            if last is not None and now - last < self.window:
                return False
            self._last_forwarded[event.type] = now

        self.consumer.on_sync_event(event)
        return True


# --- client -----------------------------------------------------------------

@dataclass
class SyncClient:
    """
    One "tab": a dispatcher, a relay channel and (optionally) a push reader.

    Server events are applied locally and relayed to siblings; local
    mutations are announced with broadcast_change().
    """
    consumer: SyncEventConsumer
    hub: LocalRelayHub
    channel_name: str = CHANNEL_NAME
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    clock: Callable[[], float] = time.monotonic
    push_reader: Optional[object] = None
    dispatcher: SyncEventDispatcher = field(init=False)
    channel: Optional[RelayChannel] = field(init=False, default=None)

    def __post_init__(self):
        self.dispatcher = SyncEventDispatcher(self.consumer, self.debounce_seconds, self.clock)

    def start(self) -> None:
        if self.channel is None:
            self.channel = self.hub.open(self.channel_name, self._on_relay_message)
        if self.push_reader is not None:
            self.push_reader.start(self.on_push_event)

    def close(self) -> None:
        if self.push_reader is not None:
            self.push_reader.stop()
        if self.channel is not None:
            self.channel.close()
            self.channel = None

    def on_push_event(self, event_type: str, timestamp: int) -> None:
        event = SyncEvent(type=event_type, timestamp=timestamp, source=SOURCE_PUSH)
        self.dispatcher.dispatch(event)
        # siblings whose own stream is down still converge
        self._relay(event_type, timestamp)

    def broadcast_change(self, event_type: str) -> int:
        """Announce a mutation made by this client to its siblings."""
        if event_type not in SYNC_TYPES:
            raise ValueError(f"Unknown sync event type: {event_type}")
        return self._relay(event_type, epoch_millis())

    def _relay(self, event_type: str, timestamp: int) -> int:
        if self.channel is None:
            return 0
        return self.channel.post(SyncEvent(type=event_type, timestamp=timestamp, source=SOURCE_LOCAL_RELAY))

    def _on_relay_message(self, event: SyncEvent) -> None:
        self.dispatcher.dispatch(event)
