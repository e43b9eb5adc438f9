"""Timestamp helpers. All times are timezone-aware UTC."""
from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO date or datetime string ("2025-01-01", "2025-01-01T10:00:00Z")."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
