from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tools import tool_video_qa
from tools.tool_video_qa import AnalysisFailedError, VideoQAArgs, run_segmented_analysis, run_video_qa
from tools.tool_video_uploader import UploadedVideo, VideoUploadError
from utils.cancellation_utils import CancelledError, initialize_flag, set_cancel_flag
from utils.preferences_utils import UserPreferences
from utils.progress_utils import AnalysisPhase


def _reply(timestamp="00:30", score=80):
    return {
        "score": score,
        "issues": [{"timestamp": timestamp, "type": "clarity", "severity": "major", "description": f"Issue at {timestamp}"}],
        "marketing": {"overallScore": 60, "hookScore": 50},
        "platformFit": {"aspectRatio": True, "duration": True, "thumbnail": "medium", "captions": True},
    }


class FakeAnalyzer:
    """Replays one reply (or exception) per call and records prompts."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _collect():
    events = []
    return events, events.append


# --- Segmented analysis ---
def test_long_video_emits_events_in_order():
    events, on_progress = _collect()
    analyzer = FakeAnalyzer(_reply("05:00"), _reply("21:00"), _reply("41:00"))
    report = run_segmented_analysis(analyzer, "Optics", "YouTube", 3000,
                                    on_progress=on_progress, window_seconds=1200)

    assert [e.phase for e in events] == [
        AnalysisPhase.PLANNING,
        AnalysisPhase.ANALYZING_SEGMENT,
        AnalysisPhase.ANALYZING_SEGMENT,
        AnalysisPhase.ANALYZING_SEGMENT,
        AnalysisPhase.MERGING,
    ]
    assert events[0].segment_count == 3
    assert events[1].message == "Analyzing Segment 1/3 (00:00 - 20:00)..."
    assert events[3].message == "Analyzing Segment 3/3 (40:00 - 50:00)..."
    assert [e.segment_index for e in events[1:4]] == [0, 1, 2]
    assert [i.timestamp for i in report.issues] == ["05:00", "21:00", "41:00"]
    assert report.duration == "50:00"


def test_short_video_is_one_window_without_planning_event():
    events, on_progress = _collect()
    analyzer = FakeAnalyzer(_reply())
    run_segmented_analysis(analyzer, "Optics", "YouTube", 300, on_progress=on_progress, window_seconds=1200)
    assert [e.phase for e in events] == [AnalysisPhase.ANALYZING_SEGMENT, AnalysisPhase.MERGING]
    assert events[0].message == "Analyzing video frames (00:00 to end)..."
    assert "(the very end)" in analyzer.prompts[0]


def test_relative_answers_in_later_windows_are_made_absolute():
    analyzer = FakeAnalyzer(_reply("05:00"), _reply("03:00"))
    report = run_segmented_analysis(analyzer, "Optics", "YouTube", 2000, window_seconds=1200)
    assert [i.timestamp for i in report.issues] == ["05:00", "23:00"]


def test_failed_segment_is_skipped_and_run_continues():
    events, on_progress = _collect()
    analyzer = FakeAnalyzer(_reply("05:00", score=90), RuntimeError("quota"), "no function call",
                            _reply("01:05:00", score=70))
    report = run_segmented_analysis(analyzer, "Optics", "YouTube", 4800,
                                    on_progress=on_progress, window_seconds=1200)

    failed = [e for e in events if e.phase == AnalysisPhase.SEGMENT_FAILED]
    assert [e.message for e in failed] == [
        "Segment 2 failed, continuing with the next segment...",
        "Segment 3 failed, continuing with the next segment...",
    ]
    assert len(analyzer.prompts) == 4
    assert report.score == 80
    assert [i.timestamp for i in report.issues] == ["05:00", "01:05:00"]


def test_all_segments_failing_raises():
    analyzer = FakeAnalyzer(RuntimeError("a"), RuntimeError("b"))
    with pytest.raises(AnalysisFailedError, match="Analysis failed to produce any results."):
        run_segmented_analysis(analyzer, "Optics", "YouTube", 2400, window_seconds=1200)


def test_cancellation_between_segments_stops_the_run():
    initialize_flag("session_cancel")

    def cancel_after_first(prompt):
        set_cancel_flag("session_cancel")
        return _reply()

    with pytest.raises(CancelledError):
        run_segmented_analysis(cancel_after_first, "Optics", "YouTube", 2400,
                               session_id="session_cancel", window_seconds=1200)


def test_cancelled_error_inside_a_segment_is_not_swallowed():
    analyzer = FakeAnalyzer(CancelledError("stop"), _reply())
    with pytest.raises(CancelledError):
        run_segmented_analysis(analyzer, "Optics", "YouTube", 2400, window_seconds=1200)
    assert len(analyzer.prompts) == 1


# --- Full run ---
def _uploaded(duration_seconds=600):
    return UploadedVideo(name="files/abc", uri="https://files/abc", mime_type="video/mp4",
                         state="ACTIVE", duration_seconds=duration_seconds)


@pytest.fixture
def gemini_mocks():
    with patch.object(tool_video_qa, "initialize_gemini", return_value=True) as init, \
         patch.object(tool_video_qa, "upload_video", return_value=_uploaded()) as upload, \
         patch.object(tool_video_qa, "make_gemini_analyze_fn") as make_fn, \
         patch.object(tool_video_qa, "delete_uploaded_video") as delete:
        yield {"init": init, "upload": upload, "make_fn": make_fn, "delete": delete}


def test_run_video_qa_success_cleans_up_remote_file(gemini_mocks):
    analyzer = FakeAnalyzer(_reply())
    gemini_mocks["make_fn"].return_value = analyzer
    events, on_progress = _collect()

    result = run_video_qa("/tmp/video.mp4", "s1", "Optics", on_progress=on_progress)

    assert result["status"] == "success"
    assert result["report"].title == "Optics"
    assert events[-1].phase == AnalysisPhase.DONE
    gemini_mocks["upload"].assert_called_once_with(Path("/tmp/video.mp4"), None, "s1", on_progress)
    gemini_mocks["make_fn"].assert_called_once_with("files/abc")
    gemini_mocks["delete"].assert_called_once_with("files/abc")


def test_run_video_qa_uses_saved_channel_and_api_key(gemini_mocks):
    analyzer = FakeAnalyzer(_reply())
    gemini_mocks["make_fn"].return_value = analyzer
    prefs = UserPreferences(api_key="user-key", default_youtube_url="https://youtube.com/@pw",
                            default_instagram_url="https://instagram.com/pw")

    run_video_qa("/tmp/video.mp4", "s1", "Optics", platform="Reels", preferences=prefs)

    gemini_mocks["init"].assert_called_once_with("user-key")
    assert "Channel URL: https://instagram.com/pw" in analyzer.prompts[0]


def test_run_video_qa_without_api_key(gemini_mocks):
    gemini_mocks["init"].return_value = False
    result = run_video_qa("/tmp/video.mp4", "s1", "Optics")
    assert result["status"] == "error"
    assert "API Key missing" in result["message"]
    gemini_mocks["upload"].assert_not_called()


def test_run_video_qa_upload_failure_is_fatal(gemini_mocks):
    gemini_mocks["upload"].side_effect = VideoUploadError("Video processing failed on Google servers.")
    events, on_progress = _collect()
    result = run_video_qa("/tmp/video.mp4", "s1", "Optics", on_progress=on_progress)
    assert result == {"status": "error", "message": "Video processing failed on Google servers.", "report": None}
    assert events[-1].phase == AnalysisPhase.FAILED
    gemini_mocks["delete"].assert_not_called()


def test_run_video_qa_all_segments_failed(gemini_mocks):
    gemini_mocks["make_fn"].return_value = FakeAnalyzer(RuntimeError("nope"))
    result = run_video_qa("/tmp/video.mp4", "s1", "Optics")
    assert result["status"] == "error"
    assert result["message"] == "Analysis failed to produce any results."
    gemini_mocks["delete"].assert_called_once_with("files/abc")


def test_run_video_qa_cancelled(gemini_mocks):
    initialize_flag("s1")
    set_cancel_flag("s1")
    result = run_video_qa("/tmp/video.mp4", "s1", "Optics")
    assert result["status"] == "cancelled"
    gemini_mocks["upload"].assert_not_called()


def test_video_qa_args_match_run_signature():
    args = VideoQAArgs(file_path="/tmp/v.mp4", session_id="s1", title="Optics")
    assert args.platform == "YouTube"
    assert set(args.model_dump()) == {"file_path", "session_id", "title", "platform", "mime_type", "channel_url"}
