from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def period_key(moment: datetime) -> str:
    """Calendar month key ("YYYY-MM") used for monthly counters."""
    return f"{moment.year:04d}-{moment.month:02d}"
