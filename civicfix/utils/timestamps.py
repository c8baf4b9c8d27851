from datetime import datetime, timezone
from typing import Optional


def to_utc(value) -> Optional[datetime]:
    """
    Parse various timestamp formats to timezone-aware datetime (UTC).

    CRITICAL: All datetimes must be timezone-aware to prevent comparison bugs.
    Accepts datetimes (naive ones are assumed UTC), ISO strings with or
    without a trailing Z, and Firestore Timestamp-like objects.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    # Firestore Timestamp interface
    if hasattr(value, 'timestamp'):
        return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
    if hasattr(value, 'to_datetime'):
        return to_utc(value.to_datetime())
    return None
