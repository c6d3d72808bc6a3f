"""UTC time helpers shared by the domain model and the gateway adapters."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a datetime to timezone-aware UTC.

    Persistence providers may hand naive datetimes back; those are stored
    in UTC throughout this codebase.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
