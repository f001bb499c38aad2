"""
Reader for the server push stream (GET /sync).

Runs on a background thread: connects with a streaming requests call,
parses frames with the wire codec and hands every `sync` frame to a
callback. When the stream breaks it waits RECONNECT_DELAY_SECONDS and
connects again, until stop() is called.
"""
import logging
import threading
from typing import Callable, Optional
from urllib.parse import urlencode

import requests

from chronoflow.infrastructure.sync.wire import EVENT_CONNECTED, EVENT_SYNC, SseFrame, iter_frames

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5.0

SyncCallback = Callable[[str, int], None]


class PushStreamReader:

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session_id: str | None = None,
        http: requests.Session | None = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        read_timeout: float = 90.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session_id = session_id
        self.http = http or requests.Session()
        self.reconnect_delay = reconnect_delay
        self.read_timeout = read_timeout
        self.client_id: Optional[str] = None
        self.last_event_id: Optional[str] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._response = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.token or self.session_id)

    def stream_url(self) -> str:
        # the token wins when both are present
        if self.token:
            params = {"token": self.token}
        else:
            params = {"sessionId": self.session_id}
        return f"{self.base_url}/sync?{urlencode(params)}"

    # --- lifecycle --------------------------------------------------------

    def start(self, on_sync: SyncCallback) -> bool:
        """Start the background reader. Returns False (and does nothing) without credentials."""
        if not self.has_credentials:
            logger.info("No credentials, push stream not started")
            return False
        if self._thread is not None and self._thread.is_alive():
            return True
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, args=(on_sync,), name="push-stream", daemon=True)
        self._thread.start()
        return True

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        response = self._response
        if response is not None:
            response.close()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _run(self, on_sync: SyncCallback) -> None:
        while not self._stop.is_set():
            try:
                self.read_stream(on_sync)
            except requests.RequestException as e:
                if self._stop.is_set():
                    break
                logger.warning("Push stream failed: %s; reconnecting in %.0fs", e, self.reconnect_delay)
            else:
                if self._stop.is_set():
                    break
                logger.info("Push stream closed by server; reconnecting in %.0fs", self.reconnect_delay)
            self._stop.wait(self.reconnect_delay)

    # --- one connection ---------------------------------------------------

    def read_stream(self, on_sync: SyncCallback) -> int:
        """
        Consume one connection until it ends. Returns the number of `sync`
        frames delivered.

        Raises:
            requests.RequestException: connect failure, non-2xx answer or a broken read
        """
        response = self.http.get(
            self.stream_url(),
            stream=True,
            headers={"Accept": "text/event-stream"},
            timeout=(10, self.read_timeout),
        )
        self._response = response
        try:
            response.raise_for_status()
            if not response.encoding:
                response.encoding = "utf-8"
            delivered = 0
            for frame in iter_frames(response.iter_lines(decode_unicode=True)):
                if self._stop.is_set():
                    break
                if self._handle_frame(frame, on_sync):
                    delivered += 1
            return delivered
        finally:
            self._response = None
            response.close()

    def _handle_frame(self, frame: SseFrame, on_sync: SyncCallback) -> bool:
        if frame.id is not None:
            self.last_event_id = frame.id

        try:
            data = frame.json()
        except ValueError:
            logger.error("Malformed push frame data: %r", frame.data)
            return False

        if frame.event == EVENT_CONNECTED:
            self.client_id = data.get("clientId")
            logger.info("Push stream connected: client_id=%s", self.client_id)
            return False
        if frame.event != EVENT_SYNC or "type" not in data:
            return False

        on_sync(data["type"], int(data.get("timestamp") or 0))
        return True
