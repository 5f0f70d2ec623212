# backend/utils/segment_utils.py
import math
import logging
from typing import List

from utils.report_schema import TimeWindow
from utils.timestamp_utils import format_clock

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 20 * 60


def plan_segments(duration_seconds: float, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> List[TimeWindow]:
    """
    Splits [0, duration) into contiguous, non-overlapping windows of window_seconds.
    An unknown duration (<= 0) gives a single open-ended window.
    """
    if window_seconds <= 0:
        raise ValueError(f"window_seconds must be positive, got {window_seconds}")
    if not duration_seconds or duration_seconds <= 0:
        logger.info("Media duration unknown. Planning a single open-ended window.")
        return [TimeWindow(start=0, end=math.inf)]

    total_windows = math.ceil(duration_seconds / window_seconds)
    windows = [
        TimeWindow(start=i * window_seconds, end=min((i + 1) * window_seconds, duration_seconds))
        for i in range(total_windows)
    ]
    logger.info(
        f"Planned {len(windows)} window(s) of up to {format_clock(window_seconds)} "
        f"for {format_clock(duration_seconds)} of media."
    )
    return windows
