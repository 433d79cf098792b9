"""
UTC date parsing utilities for the navigation engine.

Provides flexible parsing of sight and query times using dateutil, with
validation and normalization to aware UTC datetimes.
"""

from dateutil import parser
from datetime import datetime, timezone
from typing import Union


MIN_YEAR = 1000
MAX_YEAR = 3000


def ensure_utc(dt: datetime) -> datetime:
    """
    Return an aware UTC datetime.

    Naive datetimes are taken to be UTC; aware ones are converted.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _has_utc_indicator(value: str) -> bool:
    return (
        value.endswith('Z') or
        value.endswith('z') or
        value.endswith('+00:00') or
        value.endswith('-00:00') or
        value.upper().endswith('UTC') or
        value.upper().endswith('GMT')
    )


def parse_utc(value: Union[str, datetime]) -> datetime:
    """
    Parse a UTC instant.

    Args:
        value: datetime (naive taken as UTC) or a string carrying a UTC
            indicator or explicit offset

    Returns:
        Aware UTC datetime

    Raises:
        ValueError: If the value cannot be parsed, has no timezone
            indicator, or is outside the supported year range

    Examples:
        >>> parse_utc("2024-03-15T12:00:00Z")
        datetime.datetime(2024, 3, 15, 12, 0, tzinfo=datetime.timezone.utc)

        >>> parse_utc("2024-03-15 12:00 UTC")
        datetime.datetime(2024, 3, 15, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if isinstance(value, datetime):
        dt = ensure_utc(value)
    else:
        if not value or not value.strip():
            raise ValueError("Empty UTC datetime string")

        text = value.strip()
        has_indicator = _has_utc_indicator(text)

        try:
            if text.upper().endswith('UTC') or text.upper().endswith('GMT'):
                dt = parser.parse(text[:-3].strip())
            elif text.endswith('Z') or text.endswith('z'):
                dt = parser.isoparse(text[:-1] + '+00:00')
            else:
                try:
                    dt = datetime.fromisoformat(text)
                except ValueError:
                    dt = parser.parse(text)
        except (parser.ParserError, ValueError, OverflowError) as e:
            raise ValueError(f"Unable to parse UTC datetime '{text}': {e}")

        if dt.tzinfo is None and not has_indicator:
            raise ValueError("UTC datetime must include timezone indicator (Z, +00:00, or UTC)")

        dt = ensure_utc(dt)

    if dt.year < MIN_YEAR or dt.year > MAX_YEAR:
        raise ValueError(f"Year {dt.year} outside reasonable range ({MIN_YEAR}-{MAX_YEAR})")

    return dt


def format_utc(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> datetime:
    """Current aware UTC time."""
    return datetime.now(timezone.utc)
