# orderflow/utils/clock.py
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite zwraca naive datetime, zapisujemy zawsze UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def local_today() -> date:
    """Calendar day in the server's local timezone (order numbers roll over at local midnight)."""
    return datetime.now().astimezone().date()
