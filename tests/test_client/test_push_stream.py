"""Tests for the push stream reader (HTTP mocked)"""
import threading
from unittest.mock import MagicMock

import pytest
import requests

from chronoflow.client.push_stream import PushStreamReader
from chronoflow.infrastructure.sync.wire import encode_event, encode_heartbeat


def _response(*frames):
    text = "".join(frames)
    response = MagicMock()
    response.encoding = "utf-8"
    response.raise_for_status.return_value = None
    response.iter_lines.return_value = iter(text.split("\n"))
    return response


def test_stream_url_prefers_token():
    reader = PushStreamReader("http://localhost:8000/", token="abc", session_id="s1")
    assert reader.stream_url() == "http://localhost:8000/sync?token=abc"


def test_stream_url_with_session_id():
    reader = PushStreamReader("http://localhost:8000", session_id="tab-1")
    assert reader.stream_url() == "http://localhost:8000/sync?sessionId=tab-1"


def test_start_without_credentials_does_nothing():
    http = MagicMock()
    reader = PushStreamReader("http://x", http=http)
    assert reader.start(lambda t, ts: None) is False
    http.get.assert_not_called()


def test_read_stream_delivers_sync_frames_and_skips_heartbeats():
    http = MagicMock()
    http.get.return_value = _response(
        encode_event("connected", {"clientId": "1-abc", "timestamp": 10}, event_id=0),
        encode_heartbeat(11),
        encode_event("sync", {"type": "time-entries", "timestamp": 12}, event_id=1),
        encode_heartbeat(13),
        encode_event("sync", {"type": "categories", "timestamp": 14}, event_id=2),
    )
    received = []
    reader = PushStreamReader("http://x", token="t", http=http)

    delivered = reader.read_stream(lambda t, ts: received.append((t, ts)))

    assert delivered == 2
    assert received == [("time-entries", 12), ("categories", 14)]
    assert reader.client_id == "1-abc"
    assert reader.last_event_id == "2"
    _, kwargs = http.get.call_args
    assert kwargs["stream"] is True
    http.get.return_value.close.assert_called_once()


def test_malformed_frame_is_skipped():
    http = MagicMock()
    http.get.return_value = _response(
        "event: sync\ndata: {not json\n\n",
        encode_event("sync", {"type": "all", "timestamp": 1}, event_id=3),
    )
    received = []
    reader = PushStreamReader("http://x", token="t", http=http)

    assert reader.read_stream(lambda t, ts: received.append(t)) == 1
    assert received == ["all"]


def test_http_error_propagates():
    http = MagicMock()
    response = _response()
    response.raise_for_status.side_effect = requests.HTTPError("401 Client Error")
    http.get.return_value = response

    reader = PushStreamReader("http://x", token="bad", http=http)
    with pytest.raises(requests.HTTPError):
        reader.read_stream(lambda t, ts: None)
    response.close.assert_called_once()


def test_reconnects_after_failure():
    http = MagicMock()
    delivered = threading.Event()
    received = []

    def on_sync(event_type, timestamp):
        received.append(event_type)
        delivered.set()

    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        if len(calls) == 1:
            raise requests.ConnectionError("refused")
        if len(calls) == 2:
            return _response(encode_event("sync", {"type": "all", "timestamp": 1}, event_id=1))
        return _response()

    http.get.side_effect = fake_get
    reader = PushStreamReader("http://x", session_id="s", http=http, reconnect_delay=0.01)

    assert reader.start(on_sync) is True
    assert delivered.wait(2)
    reader.stop()

    assert received[0] == "all"
    assert http.get.call_count >= 2
