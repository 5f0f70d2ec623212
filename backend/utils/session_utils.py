# backend/utils/session_utils.py
import logging
import threading
from typing import Any, Dict, Optional

from utils.progress_utils import ProgressEvent
from utils.report_schema import AnalysisReport

logger = logging.getLogger(__name__)

# In-memory job state per session (replace for production)
analysis_sessions: Dict[str, Dict[str, Any]] = {}
sessions_lock = threading.Lock()


def start_session(session_id: str, title: str, platform: str):
    with sessions_lock:
        analysis_sessions[session_id] = {
            "status": "queued",
            "title": title,
            "platform": platform,
            "events": [],
            "report": None,
            "message": None,
        }
    logger.info(f"Registered analysis session {session_id} ('{title}', {platform})")


def record_event(session_id: str, event: ProgressEvent):
    with sessions_lock:
        session = analysis_sessions.get(session_id)
        if session is None:
            return
        session["events"].append(event)
        if session["status"] == "queued":
            session["status"] = "running"


def finish_session(session_id: str, status: str, message: str, report: Optional[AnalysisReport] = None):
    with sessions_lock:
        session = analysis_sessions.get(session_id)
        if session is None:
            logger.warning(f"Tried to finish unknown session {session_id}")
            return
        session["status"] = status
        session["message"] = message
        session["report"] = report
    logger.info(f"Session {session_id} finished with status '{status}'")


def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    """Returns a snapshot; the events list and report are copies, so callers can read them outside the lock."""
    with sessions_lock:
        session = analysis_sessions.get(session_id)
        if session is None:
            return None
        snapshot = dict(session)
        snapshot["events"] = list(session["events"])
        if session["report"] is not None:
            snapshot["report"] = session["report"].model_copy(deep=True)
        return snapshot


def mark_issue_fixed(session_id: str, issue_id: str) -> Optional[bool]:
    """None when there is no report for the session, else whether the issue was found."""
    with sessions_lock:
        session = analysis_sessions.get(session_id)
        if session is None or session["report"] is None:
            return None
        return session["report"].mark_issue_fixed(issue_id)
