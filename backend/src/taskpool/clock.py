"""
Business-time parsing and formatting.

User-facing timestamps ("YYYY-MM-DDTHH:mm", no offset) are always read and
rendered at one fixed UTC offset, regardless of the host timezone, so that
deadline comparisons agree across regions. Storage uses ISO-8601 UTC.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from .config import config
from .errors import InvalidTimestamp

BUSINESS_TZ = timezone(timedelta(minutes=config.BUSINESS_UTC_OFFSET_MINUTES))

LOCAL_FORMAT = '%Y-%m-%dT%H:%M'

# Canonical local form, optional seconds/fraction, optional zone suffix (ignored)
_CANONICAL_RE = re.compile(
    r'^(?P<local>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?)'
    r'(?:Z|[+-]\d{2}:?\d{2})?$'
)

_FALLBACK_FORMATS = (
    '%Y-%m-%d',
    '%Y/%m/%d %H:%M:%S',
    '%Y/%m/%d %H:%M',
    '%Y/%m/%d',
    '%Y%m%dT%H%M',
)


def now_utc() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def _localize(naive: datetime) -> datetime:
    return naive.replace(tzinfo=BUSINESS_TZ).astimezone(timezone.utc)


def parse_local_datetime(value: Union[str, datetime]) -> datetime:
    """
    Parse a user-supplied local timestamp into an absolute UTC instant.

    Any zone/offset suffix on a string is stripped and the wall-clock value
    is re-read at the business offset. A naive datetime is read at the
    business offset too; an aware datetime is already an absolute instant and
    keeps its own offset.

    Raises:
        InvalidTimestamp: if the value cannot be parsed
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return _localize(value)
        return value.astimezone(timezone.utc)

    if not isinstance(value, str) or not value.strip():
        raise InvalidTimestamp(f"Invalid timestamp: {value!r}")

    text = value.strip()
    match = _CANONICAL_RE.match(text)
    if match:
        local = match.group('local').replace(' ', 'T')
        try:
            return _localize(datetime.fromisoformat(local))
        except ValueError:
            raise InvalidTimestamp(f"Invalid timestamp: {value!r}")

    # Best-effort generic parsing
    try:
        parsed = datetime.fromisoformat(text)
        return _localize(parsed.replace(tzinfo=None))
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return _localize(datetime.strptime(text, fmt))
        except ValueError:
            continue

    raise InvalidTimestamp(f"Invalid timestamp: {value!r}")


def format_local_datetime(instant: datetime) -> str:
    """Render an absolute instant as "YYYY-MM-DDTHH:mm" at the business offset."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(BUSINESS_TZ).strftime(LOCAL_FORMAT)


def to_iso(instant: Optional[datetime]) -> Optional[str]:
    """Storage form of an instant (ISO-8601, UTC)."""
    if instant is None:
        return None
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
