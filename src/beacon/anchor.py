"""Daily anchor - when is the next midnight in the reference timezone?

Always re-derived from the current instant, so a timer armed with the result
never drifts and a 23h or 25h DST day comes out right.
"""

from datetime import datetime, timedelta, timezone

import pendulum


def _utc(dt: datetime) -> datetime:
    """Plain UTC datetime for exact arithmetic. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return datetime(dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.microsecond, tzinfo=timezone.utc)


def next_local_midnight(tz_name: str, now: datetime | None = None) -> pendulum.DateTime:
    """The first 00:00 in ``tz_name`` strictly after ``now``.

    ``now`` defaults to the current instant; a naive ``now`` is read as UTC.
    """
    tz = pendulum.timezone(tz_name)
    current = pendulum.now(tz) if now is None else pendulum.instance(_utc(now)).in_timezone(tz)
    tomorrow = current.date().add(days=1)
    return pendulum.datetime(tomorrow.year, tomorrow.month, tomorrow.day, tz=tz)


def delay_until_next_midnight(tz_name: str, now: datetime | None = None) -> timedelta:
    """Absolute time until the next local midnight in ``tz_name``."""
    current = _utc(now if now is not None else datetime.now(timezone.utc))
    midnight = _utc(next_local_midnight(tz_name, current))
    return max(midnight - current, timedelta(0))
