from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # Naive values coming back from SQLite or clients are treated as UTC.
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_date_iso(moment: datetime) -> str:
    """Observer-independent calendar date used for once-per-day rewards."""
    return ensure_utc(moment).date().isoformat()
