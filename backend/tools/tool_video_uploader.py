# backend/tools/tool_video_uploader.py
import os
import time
import logging
import mimetypes
from pathlib import Path
from typing import Any, Callable, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field
import google.generativeai as genai

from utils.cancellation_utils import check_cancellation, CancelledError
from utils.polling_utils import poll_until_terminal
from utils.progress_utils import AnalysisPhase, ProgressCallback, emit_progress
from utils.timestamp_utils import format_clock, parse_duration_seconds

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Configuration ---
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')
GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY')
FILE_POLL_INTERVAL_SECONDS = float(os.getenv("FILE_POLL_INTERVAL_SECONDS", "5"))
DEFAULT_VIDEO_MIME_TYPE = "video/mp4"
TERMINAL_STATES = {"ACTIVE", "FAILED"}


class VideoUploadError(Exception):
    """Upload or provider-side processing failed. Fatal for the whole run."""
    pass


class UploadedVideo(BaseModel):
    name: str = Field(description="Provider resource name, e.g. 'files/abc123'.")
    uri: str
    mime_type: str
    state: str
    duration_seconds: int = Field(0, description="0 when the provider reports no duration.")


# --- Client Configuration ---
_configured_api_key = None

def initialize_gemini(api_key: Optional[str] = None) -> bool:
    """Configures the Gemini SDK. An explicit key (user preference) wins over GOOGLE_API_KEY."""
    global _configured_api_key
    key = api_key or GOOGLE_API_KEY
    if not key:
        logger.error("No Gemini API key configured (GOOGLE_API_KEY or user preference).")
        return False
    if key == _configured_api_key:
        return True
    try:
        genai.configure(api_key=key)
        _configured_api_key = key
        logger.info("Gemini SDK configured.")
        return True
    except Exception as e:
        logger.exception(f"Error configuring Gemini: {e}")
        _configured_api_key = None
        return False

# --- Helper Functions ---
def guess_mime_type(file_path: Path, declared: Optional[str] = None) -> str:
    if declared and declared.startswith("video/"):
        return declared
    guessed, _ = mimetypes.guess_type(str(file_path))
    if guessed and guessed.startswith("video/"):
        return guessed
    return DEFAULT_VIDEO_MIME_TYPE

def _file_state(file_obj: Any) -> str:
    state = getattr(file_obj, 'state', None)
    return getattr(state, 'name', None) or str(state or "STATE_UNSPECIFIED")

def _file_duration_seconds(file_obj: Any) -> int:
    video_metadata = getattr(file_obj, 'video_metadata', None)
    if not video_metadata:
        return 0
    if isinstance(video_metadata, dict):
        value = video_metadata.get('video_duration') or video_metadata.get('videoDuration')
    else:
        value = getattr(video_metadata, 'video_duration', None)
    return parse_duration_seconds(value)

def delete_uploaded_video(name: Optional[str]):
    if not name:
        return
    try:
        genai.delete_file(name)
        logger.info(f"Cleaned up uploaded file: {name}")
    except Exception as del_e:
        logger.warning(f"Could not delete uploaded file {name}: {del_e}")

# --- Main Tool Function ---
def upload_video(
    file_path: Path,
    mime_type: Optional[str] = None,
    session_id: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    poll_interval_seconds: float = FILE_POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], Any] = time.sleep,
) -> UploadedVideo:
    """
    Uploads a local video to the Gemini File API and waits until the provider
    reports ACTIVE. Raises VideoUploadError on upload failure or a FAILED state.
    """
    check_cancellation(session_id)
    file_path = Path(file_path)
    mime_type = guess_mime_type(file_path, mime_type)
    emit_progress(on_progress, AnalysisPhase.UPLOADING, "Uploading to Gemini...")

    try:
        logger.info(f"Uploading {file_path.name} ({mime_type}) to Gemini... (Session: {session_id})")
        file_obj = genai.upload_file(path=file_path, mime_type=mime_type)
    except Exception as e:
        logger.error(f"Upload of {file_path.name} failed: {e}")
        raise VideoUploadError(f"Upload failed: {e}") from e

    if not getattr(file_obj, 'uri', None):
        logger.error(f"Unexpected upload response for {file_path.name}: {file_obj}")
        raise VideoUploadError("Upload failed: Response missing file URI.")

    file_name = file_obj.name
    logger.info(f"Upload status: {file_name}, State: {_file_state(file_obj)}")
    emit_progress(on_progress, AnalysisPhase.PROCESSING, "Google is processing video...")

    def _on_wait(current: Any):
        emit_progress(on_progress, AnalysisPhase.PROCESSING, f"Google is processing video... ({_file_state(current)})")

    try:
        final_file = poll_until_terminal(
            fetch_status=lambda: genai.get_file(file_name),
            is_terminal=lambda f: _file_state(f) in TERMINAL_STATES,
            interval_seconds=poll_interval_seconds,
            session_id=session_id,
            on_wait=_on_wait,
            sleep=sleep,
        )
    except CancelledError:
        logger.warning(f"Upload polling cancelled for session {session_id}.")
        delete_uploaded_video(file_name)
        raise
    except Exception as e:
        logger.error(f"Polling for {file_name} failed: {e}")
        delete_uploaded_video(file_name)
        raise VideoUploadError(f"Upload failed: {e}") from e

    state = _file_state(final_file)
    if state == "FAILED":
        logger.error(f"Video processing failed for {file_path.name}.")
        delete_uploaded_video(file_name)
        raise VideoUploadError("Video processing failed on Google servers.")

    duration_seconds = _file_duration_seconds(final_file)
    logger.info(f"File {file_name} is ACTIVE. Duration: {format_clock(duration_seconds) if duration_seconds else 'unknown'}")
    return UploadedVideo(
        name=file_name,
        uri=getattr(final_file, 'uri', None) or file_obj.uri,
        mime_type=mime_type,
        state=state,
        duration_seconds=duration_seconds,
    )
