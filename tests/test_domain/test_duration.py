"""Tests for duration derivation and time-range rules"""
from datetime import datetime, timedelta, timezone

import pytest

from chronoflow.domain.errors import InvalidTimeRangeError
from chronoflow.domain.time_entry import (
    TimeEntry, derived_duration, duration_minutes, ensure_valid_time_range,
)

T0 = datetime(2026, 3, 15, 9, 0, 0, tzinfo=timezone.utc)


class TestDurationMinutes:
    @pytest.mark.parametrize("seconds, expected", [
        (0, 0),
        (29, 0),
        (30, 1),         # half a minute rounds up
        (89, 1),
        (90, 2),         # 1.5 -> 2
        (3600, 60),
        (-30, 0),        # -0.5 -> 0 (half-up, not half-away-from-zero)
        (-90, -1),       # -1.5 -> -1
    ])
    def test_half_up_rounding(self, seconds, expected):
        assert duration_minutes(T0, T0 + timedelta(seconds=seconds)) == expected

    def test_naive_datetimes_are_utc(self):
        naive_start = datetime(2026, 3, 15, 9, 0, 0)
        assert duration_minutes(naive_start, T0 + timedelta(minutes=45)) == 45

    def test_offsets_are_normalised(self):
        plus_three = timezone(timedelta(hours=3))
        end = datetime(2026, 3, 15, 12, 30, 0, tzinfo=plus_three)  # 09:30Z
        assert duration_minutes(T0, end) == 30

    def test_derived_duration_open_entry_is_none(self):
        assert derived_duration(T0, None) is None
        assert derived_duration(T0, T0 + timedelta(minutes=5)) == 5


class TestTimeRange:
    def test_end_before_start_rejected(self):
        with pytest.raises(InvalidTimeRangeError):
            ensure_valid_time_range(T0, T0 - timedelta(seconds=1))

    def test_zero_length_allowed(self):
        ensure_valid_time_range(T0, T0)

    def test_open_entry_allowed(self):
        ensure_valid_time_range(T0, None)

    def test_error_code(self):
        with pytest.raises(InvalidTimeRangeError) as exc:
            ensure_valid_time_range(T0, T0 - timedelta(minutes=1))
        assert exc.value.code == "invalid_time_range"
        assert exc.value.status_code == 400


class TestEventPayloads:
    def test_started_payload(self):
        payload = TimeEntry.started(7, 3, "Write report", T0, closed_entry_id=6)
        assert payload == {
            "entry_id": 7,
            "category_id": 3,
            "task_name": "Write report",
            "start_time": "2026-03-15T09:00:00+00:00",
            "closed_entry_id": 6,
        }

    def test_updated_payload_is_sparse(self):
        payload = TimeEntry.updated(7, task_name="x", end_time=None)
        assert payload["task_name"] == "x"
        assert payload["end_time"] is None
        assert "category_id" not in payload
        assert "start_time" not in payload
