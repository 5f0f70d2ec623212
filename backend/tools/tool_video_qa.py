# backend/tools/tool_video_qa.py
import os
import logging
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from tools.tool_result_merger import merge_segment_results
from tools.tool_segment_analyzer import AnalyzeFn, analyze_segment, make_gemini_analyze_fn
from tools.tool_video_uploader import (
    VideoUploadError,
    initialize_gemini,
    delete_uploaded_video,
    upload_video,
)
from utils.cancellation_utils import CancelledError, check_cancellation
from utils.preferences_utils import UserPreferences
from utils.progress_utils import AnalysisPhase, ProgressCallback, emit_progress
from utils.report_schema import AnalysisReport, SegmentResult
from utils.segment_utils import plan_segments
from utils.timestamp_utils import format_clock, format_timestamp

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Configuration ---
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')
ANALYSIS_SEGMENT_MINUTES = int(os.getenv("ANALYSIS_SEGMENT_MINUTES", "20"))
segment_window_seconds = ANALYSIS_SEGMENT_MINUTES * 60


class AnalysisFailedError(Exception):
    """Every window failed, so there is nothing to report."""
    pass


# --- Pydantic Input Schema ---
class VideoQAArgs(BaseModel):
    file_path: str = Field(description="Local path of the uploaded video.")
    session_id: str = Field(description="A unique identifier for the current analysis session.")
    title: str = Field(description="Video title shown in the report and given to the model.")
    platform: str = Field("YouTube", description="Target platform, e.g. YouTube, Shorts, Instagram, Reels.")
    mime_type: Optional[str] = Field(None, description="Declared MIME type of the upload.")
    channel_url: Optional[str] = Field(None, description="Channel URL override; defaults to the user's saved channel for the platform.")


# --- Core Logic Function ---
def run_segmented_analysis(
    analyze_fn: AnalyzeFn,
    title: str,
    platform: str,
    duration_seconds: int,
    session_id: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    window_seconds: float = segment_window_seconds,
    channel_url: Optional[str] = None,
) -> AnalysisReport:
    """
    Plans windows over the media, analyzes them one at a time in time order,
    skips windows that fail and merges the rest. Raises AnalysisFailedError
    when no window succeeds.
    """
    windows = plan_segments(duration_seconds, window_seconds)
    total = len(windows)
    use_chunking = total > 1
    if use_chunking:
        emit_progress(on_progress, AnalysisPhase.PLANNING,
                      f"Video is long. Splitting into {total} segments for deep analysis...",
                      segment_count=total)

    results: List[SegmentResult] = []
    for i, window in enumerate(windows):
        check_cancellation(session_id)
        if use_chunking:
            message = f"Analyzing Segment {i + 1}/{total} ({format_timestamp(window.start)} - {format_timestamp(window.end)})..."
        else:
            message = "Analyzing video frames (00:00 to end)..."
        emit_progress(on_progress, AnalysisPhase.ANALYZING_SEGMENT, message, segment_index=i, segment_count=total)

        try:
            result = analyze_segment(window, i, total, analyze_fn, title, platform, channel_url)
        except CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in segment {i + 1}/{total} ({format_clock(window.start)}-{format_clock(window.end)}): {e}")
            emit_progress(on_progress, AnalysisPhase.SEGMENT_FAILED,
                          f"Segment {i + 1} failed, continuing with the next segment...",
                          segment_index=i, segment_count=total)
            continue
        results.append(result)

    if not results:
        raise AnalysisFailedError("Analysis failed to produce any results.")

    emit_progress(on_progress, AnalysisPhase.MERGING, "Merging analysis data...", segment_count=total)
    return merge_segment_results(results, title, platform, duration_seconds)


# --- Main Tool Function ---
def run_video_qa(
    file_path: str,
    session_id: str,
    title: str,
    platform: str = "YouTube",
    mime_type: Optional[str] = None,
    channel_url: Optional[str] = None,
    preferences: Optional[UserPreferences] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict:
    """
    Uploads the video, waits for the provider, runs the segmented analysis
    and removes the remote file. Returns a dictionary with status, message
    and, on success, the report.
    """
    preferences = preferences or UserPreferences()
    channel_url = channel_url or preferences.channel_url_for(platform) or None
    logger.info(f"Starting video QA for '{title}' ({platform}) (Session: {session_id})")

    uploaded = None
    try:
        check_cancellation(session_id)
        if not initialize_gemini(preferences.api_key):
            message = "API Key missing. Set GOOGLE_API_KEY or save an API key in preferences."
            emit_progress(on_progress, AnalysisPhase.FAILED, message)
            return {"status": "error", "message": message, "report": None}

        uploaded = upload_video(Path(file_path), mime_type, session_id, on_progress)
        check_cancellation(session_id)

        analyze_fn = make_gemini_analyze_fn(uploaded.name)
        report = run_segmented_analysis(
            analyze_fn,
            title=title,
            platform=platform,
            duration_seconds=uploaded.duration_seconds,
            session_id=session_id,
            on_progress=on_progress,
            channel_url=channel_url,
        )
        emit_progress(on_progress, AnalysisPhase.DONE, f"Analysis complete: {len(report.issues)} issue(s) found.")
        return {"status": "success", "message": "Analysis completed successfully.", "report": report}

    except CancelledError as ce:
        logger.warning(f"Video QA cancelled for session {session_id}: {ce}")
        return {"status": "cancelled", "message": "Processing cancelled by user.", "report": None}
    except (VideoUploadError, AnalysisFailedError) as e:
        logger.error(f"Video QA failed for session {session_id}: {e}")
        emit_progress(on_progress, AnalysisPhase.FAILED, str(e))
        return {"status": "error", "message": str(e), "report": None}
    except Exception as e:
        logger.exception(f"An unexpected error occurred during video QA for session {session_id}: {e}")
        emit_progress(on_progress, AnalysisPhase.FAILED, f"An unexpected error occurred: {e}")
        return {"status": "error", "message": f"An unexpected error occurred: {e}", "report": None}
    finally:
        if uploaded:
            delete_uploaded_video(uploaded.name)
