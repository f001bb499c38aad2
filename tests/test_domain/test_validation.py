"""Tests for request parameter validation helpers"""
from datetime import datetime, timedelta, timezone

import pytest

from chronoflow.domain.task_names import dedupe_names
from chronoflow.utils.timestamps import as_utc, epoch_millis
from chronoflow.utils.validation import normalize_task_name, parse_int_param


class TestParseIntParam:
    def test_default(self):
        assert parse_int_param(None, "limit", 100, minimum=1) == 100
        assert parse_int_param("", "offset", 0) == 0

    def test_value(self):
        assert parse_int_param("25", "limit", 100, minimum=1) == 25

    @pytest.mark.parametrize("value", ["-1", "abc", "1.5"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="offset must be an integer >= 0"):
            parse_int_param(value, "offset", 0)


class TestTaskNames:
    def test_trim_and_empty(self):
        assert normalize_task_name("  Deep work  ") == "Deep work"
        assert normalize_task_name("   ") is None
        assert normalize_task_name(None) is None

    def test_too_long(self):
        with pytest.raises(ValueError, match="500 characters"):
            normalize_task_name("x" * 501)
        assert normalize_task_name("x" * 500) == "x" * 500

    def test_dedupe_is_exact_match(self):
        assert dedupe_names(["Bug fix", "bug fix", "Bug fix", ""]) == ["Bug fix", "bug fix"]

    def test_dedupe_trims_like_stored_names(self):
        assert dedupe_names([" Bug fix", "Bug fix  ", "   ", "bug fix"]) == ["Bug fix", "bug fix"]


class TestTimestamps:
    def test_as_utc_naive(self):
        assert as_utc(datetime(2026, 3, 15, 9, 0)).tzinfo == timezone.utc

    def test_as_utc_converts_offsets(self):
        moscow = timezone(timedelta(hours=3))
        assert as_utc(datetime(2026, 3, 15, 12, 30, tzinfo=moscow)) == datetime(2026, 3, 15, 9, 30, tzinfo=timezone.utc)
        assert as_utc(None) is None

    def test_epoch_millis(self):
        assert epoch_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000
