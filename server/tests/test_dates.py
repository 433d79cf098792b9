"""
Tests for UTC time input parsing.
"""

import pytest
from datetime import datetime, timedelta, timezone

from celnav.util.dates import ensure_utc, format_utc, parse_utc, utc_now

NOON = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestParseUtc:
    """Tests for accepted and rejected UTC inputs."""

    @pytest.mark.parametrize("value", [
        "2024-03-15T12:00:00Z",
        "2024-03-15T12:00:00z",
        "2024-03-15T12:00:00+00:00",
        "2024-03-15 12:00 UTC",
        "2024-03-15 12:00:00 GMT",
        "2024-03-15T14:00:00+02:00",
        "2024-03-15T07:00:00-05:00",
        "  2024-03-15T12:00:00Z  ",
    ])
    def test_accepted_forms(self, value):
        assert parse_utc(value) == NOON

    def test_result_is_aware_utc(self):
        assert parse_utc("2024-03-15T12:00:00Z").tzinfo == timezone.utc

    def test_fractional_seconds(self):
        assert parse_utc("2024-03-15T12:00:00.5Z") == NOON + timedelta(milliseconds=500)

    @pytest.mark.parametrize("value", ["", "   "])
    def test_empty(self, value):
        with pytest.raises(ValueError, match="Empty"):
            parse_utc(value)

    def test_local_time_rejected(self):
        with pytest.raises(ValueError, match="timezone indicator"):
            parse_utc("2024-03-15T12:00:00")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError, match="Unable to parse"):
            parse_utc("yesterday-ish Z")

    @pytest.mark.parametrize("value", ["0999-12-31T00:00:00Z", "3001-01-01T00:00:00Z"])
    def test_year_range(self, value):
        with pytest.raises(ValueError, match="outside reasonable range"):
            parse_utc(value)

    def test_datetime_passthrough(self):
        assert parse_utc(datetime(2024, 3, 15, 12, 0)) == NOON
        local = datetime(2024, 3, 15, 13, 0, tzinfo=timezone(timedelta(hours=1)))
        assert parse_utc(local) == NOON


class TestHelpers:
    """Tests for UTC normalization and formatting."""

    def test_ensure_utc_naive(self):
        assert ensure_utc(datetime(2024, 3, 15, 12, 0)).tzinfo == timezone.utc

    def test_format_utc(self):
        assert format_utc(NOON) == "2024-03-15T12:00:00Z"
        assert format_utc(NOON.replace(microsecond=999999)) == "2024-03-15T12:00:00Z"

    def test_utc_now(self):
        now = utc_now()
        assert now.tzinfo == timezone.utc
        assert abs((datetime.now(timezone.utc) - now).total_seconds()) < 5
