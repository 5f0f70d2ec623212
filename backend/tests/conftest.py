import pytest

from utils import session_utils
from utils.cancellation_utils import cancellation_flags, state_lock
from utils.report_schema import AnalysisReport, Issue, MarketingAssessment, TimeWindow, SegmentResult


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Keep session and cancellation state isolated between tests."""
    with state_lock:
        cancellation_flags.clear()
    with session_utils.sessions_lock:
        session_utils.analysis_sessions.clear()
    yield
    with state_lock:
        cancellation_flags.clear()
    with session_utils.sessions_lock:
        session_utils.analysis_sessions.clear()


def make_issue(timestamp, description="Typo in overlay", category="spelling", severity="minor", **extra):
    return Issue(timestamp=timestamp, type=category, severity=severity, description=description, **extra)


def make_segment(index, start, end, score=80, issues=None, marketing=None, platform_fit=None):
    return SegmentResult(
        window=TimeWindow(start=start, end=end),
        index=index,
        score=score,
        issues=issues or [],
        marketing=marketing,
        platform_fit=platform_fit,
    )


@pytest.fixture
def sample_report():
    return AnalysisReport(
        title="Kinematics One Shot",
        platform="YouTube",
        score=82,
        duration="25:00",
        duration_seconds=1500,
        issues=[
            make_issue("01:05", "Spelling of 'velocity'", impact="Looks careless"),
            make_issue("21:40", "Wrong sign in formula", category="factual", severity="critical"),
        ],
        marketing=MarketingAssessment(overall_score=75, hook_score=70, hook_feedback="Strong opener",
                                      cta_score=60, cta_feedback="CTA too quiet"),
    )
