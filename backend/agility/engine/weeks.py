"""Calendar week helpers. Weeks start on Monday and are numbered per ISO-8601."""
from datetime import date, datetime, time, timedelta, timezone

DAY = timedelta(days=1)
WEEK = timedelta(days=7)


def to_date(value: date | datetime | str) -> date:
    """Calendar date of a date, datetime (naive treated as UTC) or ISO string."""
    if isinstance(value, datetime):
        return to_utc(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Invalid date: empty string")
        try:
            return date.fromisoformat(text)
        except ValueError:
            return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()
    raise TypeError(f"Expected date, datetime or ISO string, got {type(value).__name__}")


def to_utc(value: date | datetime) -> datetime:
    """Aware UTC datetime. Plain dates become UTC midnight."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def week_start(value: date | datetime | str) -> date:
    """Monday of the week containing value."""
    d = to_date(value)
    return d - timedelta(days=d.weekday())


def week_end(value: date | datetime | str) -> date:
    """Sunday of the week containing value."""
    return week_start(value) + timedelta(days=6)


def week_number(value: date | datetime | str) -> int:
    """ISO-8601 week number (week 1 holds the year's first Thursday)."""
    return to_date(value).isocalendar()[1]


def iso_year(value: date | datetime | str) -> int:
    """ISO week-numbering year. Differs from the calendar year around New Year."""
    return to_date(value).isocalendar()[0]


def week_key(value: date | datetime | str) -> tuple[int, int]:
    """(week_number, year) identifying the week containing value."""
    iso = to_date(value).isocalendar()
    return iso[1], iso[0]


def sprint_week(week_start_date: date, sprint_start: date) -> int:
    """1-based week index within a sprint, capped at 2."""
    days = (to_date(week_start_date) - to_date(sprint_start)).days
    return min(days // 7 + 1, 2)


def is_phase_locked(end_date: date, now: datetime | None = None) -> bool:
    """A phase is locked once its end date has passed."""
    now = to_utc(now) if now is not None else utc_now()
    return to_utc(end_date) < now
