# backend/utils/timestamp_utils.py
import math
import logging
from datetime import timedelta
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_timestamp(ts_string: Optional[str]) -> int:
    """
    Converts 'MM:SS', 'HH:MM:SS' or raw seconds like '90s' to whole seconds.
    Malformed input yields 0 so a bad timestamp never aborts a report.
    """
    if not ts_string or not isinstance(ts_string, str):
        return 0
    text = ts_string.strip()
    try:
        if text.endswith('s') and ':' not in text:
            seconds = float(text[:-1])
        else:
            parts = text.split(':')
            if len(parts) == 3:
                h, m = map(int, parts[:2])
                seconds = h * 3600 + m * 60 + float(parts[2])
            elif len(parts) == 2:
                m = int(parts[0])
                seconds = m * 60 + float(parts[1])
            else:
                return 0
    except ValueError:
        logger.debug(f"Unparseable timestamp '{ts_string}', defaulting to 0.")
        return 0
    if not math.isfinite(seconds) or seconds < 0:
        return 0
    return int(seconds)


def format_timestamp(seconds: Optional[float]) -> str:
    """MM:SS below one hour, HH:MM:SS otherwise. Fractions are dropped."""
    if seconds is None or not isinstance(seconds, (int, float)) or not math.isfinite(seconds):
        return "00:00"
    total_seconds = max(0, int(seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60
    if hours:
        return f"{hours:02}:{minutes:02}:{secs:02}"
    return f"{minutes:02}:{secs:02}"


def format_clock(seconds: Optional[float]) -> str:
    if seconds is None or not isinstance(seconds, (int, float)) or not math.isfinite(seconds):
        return "??:??:??"
    total_seconds = max(0, int(seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60
    return f"{hours:02}:{minutes:02}:{secs:02}"


def parse_duration_seconds(value: Any) -> int:
    """
    Normalizes a provider media duration ('1234s', '1234.5s', 1234, timedelta)
    to whole seconds. Unknown or unparseable durations are 0.
    """
    if value is None:
        return 0
    try:
        if isinstance(value, timedelta):
            seconds = value.total_seconds()
        elif isinstance(value, (int, float)):
            seconds = float(value)
        elif isinstance(value, str):
            text = value.strip().rstrip('s')
            if not text:
                return 0
            seconds = float(text)
        elif hasattr(value, 'seconds'):
            seconds = float(getattr(value, 'seconds', 0) or 0) + float(getattr(value, 'nanos', 0) or 0) / 1e9
        else:
            logger.warning(f"Unrecognized duration type {type(value)}; treating as unknown.")
            return 0
    except (TypeError, ValueError):
        logger.warning(f"Could not parse media duration '{value}'; treating as unknown.")
        return 0
    if not math.isfinite(seconds) or seconds <= 0:
        return 0
    return int(seconds)
