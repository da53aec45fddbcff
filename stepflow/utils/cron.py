"""
Schedule expression evaluation.

A schedule expression is either a standard 5-field cron expression
("*/15 * * * *") evaluated with croniter, or a fixed interval written as a
duration string ("15m", "1h").
"""

from datetime import UTC, datetime, timedelta
from typing import Optional

from croniter import croniter

from stepflow.core.exceptions import InvalidScheduleError
from stepflow.utils.duration import is_duration_string, parse_duration_string


def validate_schedule_expression(expression: str) -> None:
    """
    Check that a schedule expression can be evaluated.

    Raises:
        InvalidScheduleError: If the expression is neither a cron expression
            nor a positive interval
    """
    if not expression or not expression.strip():
        raise InvalidScheduleError(expression or "", "empty expression")

    if is_duration_string(expression):
        if parse_duration_string(expression) <= 0:
            raise InvalidScheduleError(expression, "interval must be positive")
        return

    if not croniter.is_valid(expression):
        raise InvalidScheduleError(expression, "not a valid cron expression")


def compute_next_run(expression: str, after: Optional[datetime] = None) -> datetime:
    """
    Compute the first run time strictly after ``after``.

    Args:
        expression: Cron expression or interval duration string
        after: Reference time (defaults to now, UTC)

    Returns:
        Next run time as a timezone-aware UTC datetime

    Examples:
        >>> compute_next_run("15m", datetime(2025, 1, 1, 12, 0, tzinfo=UTC))
        datetime.datetime(2025, 1, 1, 12, 15, tzinfo=datetime.timezone.utc)
        >>> compute_next_run("0 * * * *", datetime(2025, 1, 1, 12, 5, tzinfo=UTC))
        datetime.datetime(2025, 1, 1, 13, 0, tzinfo=datetime.timezone.utc)
    """
    validate_schedule_expression(expression)

    reference = ensure_aware(after or datetime.now(UTC))

    if is_duration_string(expression):
        return reference + timedelta(seconds=parse_duration_string(expression))

    next_run = croniter(expression, reference).get_next(datetime)
    return ensure_aware(next_run)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ensure_optional_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_aware(value)
