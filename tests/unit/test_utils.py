"""
Unit tests for duration parsing and schedule expressions.
"""

from datetime import UTC, datetime, timedelta

import pytest

from stepflow.core.exceptions import InvalidScheduleError
from stepflow.utils.cron import compute_next_run, ensure_aware, validate_schedule_expression
from stepflow.utils.duration import (
    is_duration_string,
    parse_duration,
    parse_duration_string,
    parse_optional_duration,
)


class TestDuration:
    """Test duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("30s", 30), ("5m", 300), ("2h", 7200), ("1d", 86400), ("1w", 604800), ("90", 90)],
    )
    def test_parse_duration_string(self, value, expected):
        assert parse_duration_string(value) == expected

    def test_parse_duration_types(self):
        assert parse_duration(60) == 60.0
        assert parse_duration(1.5) == 1.5
        assert parse_duration(timedelta(minutes=2)) == 120.0

    def test_invalid_durations(self):
        with pytest.raises(ValueError):
            parse_duration("5 minutes")
        with pytest.raises(ValueError):
            parse_duration(-1)
        with pytest.raises(TypeError):
            parse_duration(True)

    def test_optional_duration(self):
        assert parse_optional_duration(None) is None
        assert parse_optional_duration("") is None
        assert parse_optional_duration("1m") == 60.0

    def test_is_duration_string(self):
        assert is_duration_string("15m")
        assert not is_duration_string("*/15 * * * *")


class TestScheduleExpressions:
    """Test cron and interval schedules."""

    def test_interval_next_run(self):
        after = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

        assert compute_next_run("15m", after) == datetime(2025, 1, 1, 12, 15, tzinfo=UTC)

    def test_cron_next_run(self):
        after = datetime(2025, 1, 1, 12, 5, tzinfo=UTC)

        assert compute_next_run("0 * * * *", after) == datetime(2025, 1, 1, 13, 0, tzinfo=UTC)

    def test_cron_next_run_is_strictly_after(self):
        """Test that a reference time on the boundary moves to the next slot."""
        after = datetime(2025, 1, 1, 8, 0, tzinfo=UTC)

        assert compute_next_run("0 8 * * *", after) == datetime(2025, 1, 2, 8, 0, tzinfo=UTC)

    def test_naive_reference_is_utc(self):
        next_run = compute_next_run("1h", datetime(2025, 1, 1, 12, 0))

        assert next_run == datetime(2025, 1, 1, 13, 0, tzinfo=UTC)

    def test_default_reference_is_now(self):
        before = datetime.now(UTC)

        next_run = compute_next_run("1h")

        assert before + timedelta(hours=1) <= next_run
        assert next_run.tzinfo is not None

    @pytest.mark.parametrize("expression", ["", "   ", "whenever", "61 * * * *", "0s"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(InvalidScheduleError):
            validate_schedule_expression(expression)

    def test_ensure_aware_normalizes_to_utc(self):
        from datetime import timezone

        plus_two = timezone(timedelta(hours=2))
        value = datetime(2025, 1, 1, 14, 0, tzinfo=plus_two)

        assert ensure_aware(value) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
        assert ensure_aware(value).utcoffset() == timedelta(0)
