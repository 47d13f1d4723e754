"""Row conversion helpers shared by the Supabase repositories."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


def to_decimal(value: object) -> Decimal:
    """Parse a numeric column; PostgREST returns numerics as str or float."""
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def optional_uuid(value: object) -> UUID | None:
    """Parse a nullable uuid column."""
    return UUID(str(value)) if value else None


def optional_date(value: object) -> date | None:
    """Parse a nullable date column."""
    return date.fromisoformat(str(value)) if value else None


def optional_datetime(value: object) -> datetime | None:
    """Parse a nullable timestamptz column."""
    return datetime.fromisoformat(str(value)) if value else None


def optional_str(value: UUID | date | datetime | None) -> str | None:
    """Serialize a nullable uuid/date/timestamp for a payload."""
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
