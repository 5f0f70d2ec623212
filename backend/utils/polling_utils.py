# backend/utils/polling_utils.py
import time
import logging
from typing import Any, Callable, Optional, TypeVar

from utils.cancellation_utils import check_cancellation

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll_until_terminal(
    fetch_status: Callable[[], T],
    is_terminal: Callable[[T], bool],
    interval_seconds: float = 5.0,
    session_id: Optional[str] = None,
    on_wait: Optional[Callable[[T], Any]] = None,
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """
    Calls fetch_status until is_terminal(status) holds, sleeping a fixed
    interval between attempts. There is no attempt limit; the provider is
    expected to reach a terminal state or fail on its own.
    """
    attempt = 0
    while True:
        check_cancellation(session_id)
        attempt += 1
        status = fetch_status()
        if is_terminal(status):
            logger.info(f"Reached terminal state after {attempt} poll(s).")
            return status
        if on_wait:
            on_wait(status)
        logger.debug(f"Poll {attempt}: not terminal yet, waiting {interval_seconds}s...")
        sleep(interval_seconds)
