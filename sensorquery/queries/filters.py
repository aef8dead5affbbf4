import re
from datetime import datetime, timezone
from typing import Optional

from sensorquery.core.exceptions import InvalidQueryError


# Flux duration literal, e.g. 5m, 1h, 30s
_DURATION_PATTERN = re.compile(r"^\d+(ns|us|ms|s|m|h|d|w|mo|y)$")


def split_filter_values(values: Optional[str]) -> list[str]:
    """
    Split a comma-separated ID filter into its non-empty, trimmed values.
    
    Examples:
        >>> split_filter_values("10, 20,30")
        ['10', '20', '30']
        
        >>> split_filter_values("  ")
        []
    """
    if values is None or not values.strip():
        return []
    
    return [value.strip() for value in values.split(",") if value.strip()]


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_rfc3339_millis(value: datetime) -> str:
    """Render a timestamp as RFC3339 UTC with millisecond precision."""
    value = to_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def escape_flux_string(value: str) -> str:
    """Escape a value for use inside a double-quoted Flux string literal."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")


def validate_window_period(window_period: str) -> str:
    """
    Raises:
        InvalidQueryError: If window_period is not a duration literal such as "5m"
    """
    if not window_period or not _DURATION_PATTERN.match(window_period):
        raise InvalidQueryError(f"Invalid window period: {window_period!r}")
    return window_period
