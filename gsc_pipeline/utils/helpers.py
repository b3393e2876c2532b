"""
Helper utilities
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple


def utcnow() -> datetime:
    """Naive UTC now (the database stores naive UTC timestamps)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_date_range(days: int, today: Optional[date] = None) -> Tuple[date, date]:
    """Inclusive (start, end) date window ending today"""
    end_date = today or utcnow().date()
    start_date = end_date - timedelta(days=days)
    return start_date, end_date


def format_date(value: date) -> str:
    """YYYY-MM-DD, the only date format the Search Console API accepts"""
    return value.strftime("%Y-%m-%d")


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse Google's RFC 3339 timestamps ('2024-01-01T10:00:00Z') into naive UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def dedupe_preserving_order(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
