"""Date parsing and normalization utilities."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from ..core.logger import get_logger

logger = get_logger(__name__)

# Values above this are already milliseconds
MILLISECOND_THRESHOLD = 10 ** 12

FOLDER_PATTERN = re.compile(r'^\d{6}$')


def normalize_timestamp(value: Any) -> Optional[int]:
    """Convert an Instagram timestamp (seconds or milliseconds) to milliseconds."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")) or number == 0:
        return None
    ms = number if number > MILLISECOND_THRESHOLD else number * 1000
    return int(ms)


def timestamp_to_date(timestamp_ms: Optional[int]) -> str:
    """Return the UTC calendar date (YYYY-MM-DD) of a millisecond timestamp."""
    if not timestamp_ms:
        return ""
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError) as e:
        logger.debug(f"Unusable timestamp {timestamp_ms}: {e}")
        return ""


def is_month_folder(name: str) -> bool:
    return bool(FOLDER_PATTERN.match(name))


def folder_to_date(folder: str) -> str:
    """YYYYMM folder name to the first day of that month."""
    return f"{folder[:4]}-{folder[4:6]}-01"


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def resolve_date_taken(
    instagram_date: Optional[str] = None,
    instagram_timestamp: Optional[Any] = None,
    folder_date: Optional[str] = None,
) -> str:
    """Pick the best known capture date, falling back to today."""
    if instagram_date:
        return instagram_date

    date_from_timestamp = timestamp_to_date(normalize_timestamp(instagram_timestamp))
    if date_from_timestamp:
        return date_from_timestamp

    if folder_date:
        return folder_date

    return today()
