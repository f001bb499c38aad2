"""
Server-Sent Events wire format used by GET /sync

    id: 42
    event: sync
    data: {"type": "time-entries", "timestamp": 1773567000000}
    <blank line>

Keep-alives are bare comments (":heartbeat 1773567000000" + blank line).
They carry no id/event and parsers skip them.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional

SYNC_TYPE_TIME_ENTRIES = "time-entries"
SYNC_TYPE_CATEGORIES = "categories"
SYNC_TYPE_ALL = "all"
SYNC_TYPES = (SYNC_TYPE_TIME_ENTRIES, SYNC_TYPE_CATEGORIES, SYNC_TYPE_ALL)

EVENT_CONNECTED = "connected"
EVENT_SYNC = "sync"


def encode_event(event: str, data: Dict[str, Any], event_id: Optional[int] = None) -> str:
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


def encode_heartbeat(timestamp_ms: int) -> str:
    return f":heartbeat {timestamp_ms}\n\n"


@dataclass
class SseFrame:
    event: str = "message"
    data: str = ""
    id: Optional[str] = None

    def json(self) -> Dict[str, Any]:
        return json.loads(self.data) if self.data else {}


@dataclass
class SseParser:
    """
    Incremental line parser. Feed it lines without their trailing newline;
    it returns a frame whenever a blank line terminates a record.
    """
    _event: Optional[str] = None
    _data: list = field(default_factory=list)
    _id: Optional[str] = None

    def feed(self, line: str) -> Optional[SseFrame]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None  # comment / heartbeat

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        # unknown fields (e.g. "retry") are ignored
        return None

    def _dispatch(self) -> Optional[SseFrame]:
        if self._event is None and not self._data and self._id is None:
            return None
        frame = SseFrame(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._id,
        )
        self._event, self._data, self._id = None, [], None
        return frame


def iter_frames(lines: Iterable[str]) -> Iterator[SseFrame]:
    parser = SseParser()
    for line in lines:
        frame = parser.feed(line.rstrip("\r"))
        if frame is not None:
            yield frame
