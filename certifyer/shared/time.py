from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_value(value: str | date | None) -> date | None:
    """Parse ISO-ish date strings (``2024-03-01``, ``2024-03-01T10:00:00.000Z``)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def format_display_date(value: str | date | None) -> str:
    """Long en-US form (``March 1, 2024``); unparseable input is returned as-is."""
    parsed = parse_date_value(value)
    if parsed is None:
        return "" if value is None else str(value)
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def fmt_dt(value: datetime | date | str | None) -> str:
    """Format datetimes without seconds; dates use D MMM YYYY."""
    if not value:
        return ""
    if isinstance(value, str):
        parsed = parse_date_value(value)
        return f"{parsed.day} {parsed:%b %Y}" if parsed else value
    if isinstance(value, datetime):
        return f"{value.day} {value:%b %Y %H:%M}"
    if isinstance(value, date):
        return f"{value.day} {value:%b %Y}"
    return str(value)
