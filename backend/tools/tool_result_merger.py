# backend/tools/tool_result_merger.py
import math
import logging
from typing import Iterable, List, Optional

from utils.report_schema import AnalysisReport, Issue, MarketingAssessment, RetentionPoint, SegmentResult
from utils.timestamp_utils import format_timestamp

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

MAX_RETENTION_POINTS = 20
NO_HOOK_FEEDBACK = "No hook data found"
NO_CTA_FEEDBACK = "No CTA data found"


class NoSegmentResultsError(Exception):
    """Merge was asked to combine zero segment results."""
    pass


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean_score(values: Iterable[Optional[float]]) -> int:
    present = [v for v in values if isinstance(v, (int, float)) and math.isfinite(v)]
    if not present:
        return 0
    return _round_half_up(sum(present) / len(present))


def _dedupe_issues(results: List[SegmentResult]) -> List[Issue]:
    seen = set()
    unique: List[Issue] = []
    for result in results:
        for issue in result.issues:
            key = (issue.timestamp, issue.description)
            if key in seen:
                continue
            seen.add(key)
            unique.append(issue)
    # sorted() is stable, so equal timestamps keep window order
    return sorted(unique, key=lambda i: i.seconds)


def merge_retention_curves(results: List[SegmentResult], max_points: int = MAX_RETENTION_POINTS) -> List[RetentionPoint]:
    seen = set()
    points: List[RetentionPoint] = []
    for result in results:
        if not result.marketing:
            continue
        for point in result.marketing.retention_curve:
            if point.timestamp in seen:
                continue
            seen.add(point.timestamp)
            points.append(point)
    points.sort(key=lambda p: p.seconds)

    if len(points) > max_points:
        stride = math.ceil(len(points) / max_points)
        logger.info(f"Downsampling retention curve from {len(points)} points with stride {stride}.")
        points = points[::stride]
    return points


def merge_segment_results(
    results: List[SegmentResult],
    title: str,
    platform: str,
    duration_seconds: int = 0,
) -> AnalysisReport:
    """
    Combines ordered per-window results (index 0 earliest) into one report.
    Hook data comes from the first window, CTA data from the last, platform
    fit from the first.
    """
    if not results:
        raise NoSegmentResultsError("Analysis failed to produce any results.")

    duration = format_timestamp(duration_seconds) if duration_seconds else ""
    first = results[0]
    last = results[-1]

    if len(results) == 1:
        logger.info("Single segment result; returning it as the report.")
        return AnalysisReport(
            title=title,
            platform=platform,
            score=_mean_score([first.score]),
            duration=duration,
            duration_seconds=duration_seconds,
            issues=list(first.issues),
            marketing=first.marketing or MarketingAssessment(),
            platform_fit=first.platform_fit,
        )

    logger.info(f"Merging {len(results)} segment results...")
    issues = _dedupe_issues(results)
    first_marketing = first.marketing or MarketingAssessment()
    last_marketing = last.marketing or MarketingAssessment()

    marketing = MarketingAssessment(
        overall_score=_mean_score(r.marketing.overall_score if r.marketing else None for r in results),
        hook_score=first_marketing.hook_score or 0,
        hook_feedback=first_marketing.hook_feedback or NO_HOOK_FEEDBACK,
        cta_score=last_marketing.cta_score or 0,
        cta_feedback=last_marketing.cta_feedback or NO_CTA_FEEDBACK,
        retention_curve=merge_retention_curves(results),
    )

    report = AnalysisReport(
        title=title,
        platform=platform,
        score=_mean_score(r.score for r in results),
        duration=duration,
        duration_seconds=duration_seconds,
        issues=issues,
        marketing=marketing,
        platform_fit=first.platform_fit,
    )
    logger.info(f"Merged report: score {report.score}, {len(issues)} unique issue(s), {len(marketing.retention_curve)} retention point(s).")
    return report
