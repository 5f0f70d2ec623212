# backend/utils/cancellation_utils.py
import logging
import threading

logger = logging.getLogger(__name__)

cancellation_flags = {}
state_lock = threading.Lock()

# --- Custom Exception ---
class CancelledError(Exception):
    """Raised when the user cancels an analysis run."""
    pass

# --- Check Function ---
def check_cancellation(session_id: str):
    """Checks flag and raises CancelledError if set."""
    if not session_id:
        return

    with state_lock:
        is_cancelled = cancellation_flags.get(session_id, {}).get('cancelled', False)
    if is_cancelled:
        logger.warning(f"Cancellation detected for session {session_id}.")
        raise CancelledError(f"Analysis cancelled for session {session_id}")

# --- Helper to Initialize/Reset Flag ---
def initialize_flag(session_id: str):
    """Ensures flag dict exists and sets 'cancelled' to False."""
    if not session_id:
        return
    with state_lock:
        cancellation_flags.setdefault(session_id, {})['cancelled'] = False
    logger.debug(f"Initialized/Reset cancellation flag for session {session_id}")

# --- Helper to Set Flag (called from cancel endpoint) ---
def set_cancel_flag(session_id: str) -> bool:
    """Sets the 'cancelled' flag. Returns False for a session that was never started."""
    if not session_id:
        return False
    with state_lock:
        if session_id not in cancellation_flags:
            logger.warning(f"Cancel requested for unknown session {session_id}.")
            return False
        cancellation_flags[session_id]['cancelled'] = True
    logger.info(f"Cancellation flag SET for session {session_id}.")
    return True

def clear_flag(session_id: str):
    if not session_id:
        return
    with state_lock:
        cancellation_flags.pop(session_id, None)
