# backend/utils/progress_utils.py
import logging
from enum import Enum
from typing import Callable, Optional
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class AnalysisPhase(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    PLANNING = "planning"
    ANALYZING_SEGMENT = "analyzing_segment"
    SEGMENT_FAILED = "segment_failed"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class ProgressEvent(BaseModel):
    phase: AnalysisPhase
    message: str
    segment_index: Optional[int] = None
    segment_count: Optional[int] = None


ProgressCallback = Callable[[ProgressEvent], None]


def emit_progress(
    on_progress: Optional[ProgressCallback],
    phase: AnalysisPhase,
    message: str,
    segment_index: Optional[int] = None,
    segment_count: Optional[int] = None,
) -> ProgressEvent:
    """Logs the event and forwards it to the observer, if any."""
    event = ProgressEvent(phase=phase, message=message, segment_index=segment_index, segment_count=segment_count)
    logger.info(f"[{phase.value}] {message}")
    if on_progress:
        try:
            on_progress(event)
        except Exception as e:
            # observer errors are logged, never raised
            logger.warning(f"Progress observer raised {type(e).__name__}: {e}")
    return event
