"""
Live-connection registry and per-user fan-out for GET /sync.

One SyncBroadcaster is created by the application factory and kept on
app.state; routes and use cases receive it through dependencies. It is
process-local: with several server processes, a mutation handled by one
process does not reach streams held by another.

Mutations run on FastAPI's worker threads while the streams live on the
event loop, so frames are handed over with loop.call_soon_threadsafe.
Each connection has its own bounded queue; a full queue or a dead loop
means the client is gone and the connection is dropped.
"""
import asyncio
import itertools
import logging
import threading
import uuid
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from chronoflow.infrastructure.sync.wire import (
    EVENT_CONNECTED, EVENT_SYNC, SYNC_TYPES, encode_event, encode_heartbeat,
)
from chronoflow.utils.timestamps import epoch_millis

logger = logging.getLogger(__name__)

_CLOSE = None  # queue sentinel: end the stream


class ConnectionState(str, Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SyncConnection:
    """One push stream, bound to a single user for its whole life."""

    def __init__(self, connection_id: str, user_id: int, queue_size: int, loop: asyncio.AbstractEventLoop):
        self.connection_id = connection_id
        self.user_id = user_id
        self.state = ConnectionState.CONNECTING
        self.last_event_id = 0
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def put_nowait(self, frame: Optional[str]) -> bool:
        """Must run on the connection's loop. False if the queue is full."""
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    async def next_frame(self, timeout: float) -> Optional[str]:
        """Next queued frame; raises asyncio.TimeoutError when idle for `timeout` seconds."""
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def pending(self) -> int:
        return self._queue.qsize()


class SyncBroadcaster:

    def __init__(self, heartbeat_seconds: float = 30.0, queue_size: int = 100):
        self.heartbeat_seconds = heartbeat_seconds
        self.queue_size = queue_size
        self._connections: Dict[str, SyncConnection] = {}
        # re-entrant: a failed hand-off inside broadcast() deregisters under the same lock
        self._lock = threading.RLock()
        self._sequence = 0
        self._ids = itertools.count(1)
        self._running = False

    # --- lifecycle --------------------------------------------------------

    def init(self) -> None:
        self._running = True
        logger.info("Sync broadcaster started (heartbeat %.0fs)", self.heartbeat_seconds)

    def shutdown(self) -> None:
        """Close every stream and forget all connections."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            self._running = False
        for connection in connections:
            connection.state = ConnectionState.CLOSED
            self._deliver(connection, _CLOSE)
        logger.info("Sync broadcaster stopped, closed %d connection(s)", len(connections))

    @property
    def running(self) -> bool:
        return self._running

    @property
    def event_counter(self) -> int:
        return self._sequence

    # --- connections ------------------------------------------------------

    def open_connection(self, user_id: int) -> SyncConnection:
        """
        Register a new stream for user_id and queue its `connected` frame.
        Must be called from the event loop that will serve the stream.
        """
        loop = asyncio.get_running_loop()
        connection_id = f"{next(self._ids)}-{uuid.uuid4().hex[:9]}"
        connection = SyncConnection(connection_id, user_id, self.queue_size, loop)

        with self._lock:
            connection.last_event_id = self._sequence
            connection.put_nowait(encode_event(
                EVENT_CONNECTED,
                {"clientId": connection_id, "timestamp": epoch_millis()},
                event_id=self._sequence,
            ))
            self._connections[connection_id] = connection
            total = len(self._connections)
        connection.state = ConnectionState.OPEN

        logger.info("SSE client connected: client_id=%s user_id=%s total=%d", connection_id, user_id, total)
        return connection

    def close_connection(self, connection_id: str) -> None:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            total = len(self._connections)
        if connection is None:
            return
        connection.state = ConnectionState.CLOSED
        logger.info("SSE client disconnected: client_id=%s user_id=%s total=%d",
                    connection_id, connection.user_id, total)

    # --- fan-out ----------------------------------------------------------

    def broadcast(self, user_id: int, event_type: str) -> int:
        """
        Push one `sync` frame to every live connection of user_id.

        Safe to call from any thread. Returns the number of connections the
        frame was handed to. Never raises because of a dead connection.
        """
        if event_type not in SYNC_TYPES:
            raise ValueError(f"Unknown sync event type: {event_type}")

        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            frame = encode_event(
                EVENT_SYNC,
                {"type": event_type, "timestamp": epoch_millis()},
                event_id=sequence,
            )
            targets = [c for c in self._connections.values() if c.user_id == user_id]
            # scheduled under the lock so every connection sees sequences in order
            delivered = 0
            for connection in targets:
                if self._deliver(connection, frame):
                    connection.last_event_id = sequence
                    delivered += 1

        if delivered:
            logger.debug("Broadcast sync event: user_id=%s type=%s clients=%d", user_id, event_type, delivered)
        return delivered

    def _deliver(self, connection: SyncConnection, frame: Optional[str]) -> bool:
        loop = connection.loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            if not connection.put_nowait(frame) and frame is not _CLOSE:
                self._drop(connection)
                return False
            return True

        try:
            loop.call_soon_threadsafe(self._put_or_drop, connection, frame)
        except RuntimeError:
            # loop closed: the stream is gone
            self._drop(connection)
            return False
        return True

    def _put_or_drop(self, connection: SyncConnection, frame: Optional[str]) -> None:
        if not connection.put_nowait(frame) and frame is not _CLOSE:
            self._drop(connection)

    def _drop(self, connection: SyncConnection) -> None:
        logger.debug("Removed unresponsive SSE client: client_id=%s user_id=%s",
                     connection.connection_id, connection.user_id)
        self.close_connection(connection.connection_id)

    # --- streaming --------------------------------------------------------

    async def stream(
        self,
        connection: SyncConnection,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """
        Frames for one connection until the client leaves or the
        broadcaster shuts down. Emits a heartbeat comment whenever the
        connection has been idle for heartbeat_seconds.
        """
        try:
            while connection.state is not ConnectionState.CLOSED:
                try:
                    frame = await connection.next_frame(self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    if is_disconnected is not None and await is_disconnected():
                        break
                    yield encode_heartbeat(epoch_millis())
                    continue
                if frame is _CLOSE:
                    break
                yield frame
        finally:
            self.close_connection(connection.connection_id)

    # --- introspection ----------------------------------------------------

    def status(self, user_id: int) -> dict:
        with self._lock:
            total = len(self._connections)
            mine = sum(1 for c in self._connections.values() if c.user_id == user_id)
            counter = self._sequence
        return {"totalClients": total, "userClients": mine, "eventCounter": counter}

    def connection_count(self, user_id: Optional[int] = None) -> int:
        with self._lock:
            if user_id is None:
                return len(self._connections)
            return sum(1 for c in self._connections.values() if c.user_id == user_id)
