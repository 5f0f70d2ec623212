# backend/utils/report_schema.py
import math
import logging
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.timestamp_utils import parse_timestamp

logger = logging.getLogger(__name__)


class IssueCategory(str, Enum):
    SPELLING = "spelling"
    FACTUAL = "factual"
    CLARITY = "clarity"
    MARKETING = "marketing"
    PLATFORM = "platform"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    SUGGESTION = "suggestion"


class ThumbnailQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _WireModel(BaseModel):
    # Field names are snake_case; aliases match the function-call schema sent to the model.
    model_config = ConfigDict(populate_by_name=True)


class TimeWindow(BaseModel):
    start: float = Field(description="Window start, seconds from media start.")
    end: float = Field(description="Window end, seconds. math.inf means 'to the end of the media'.")

    @property
    def is_open_ended(self) -> bool:
        return math.isinf(self.end)


class Issue(_WireModel):
    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    timestamp: str = Field(description="MM:SS or HH:MM:SS, absolute to the media start.")
    category: IssueCategory = Field(alias="type")
    severity: IssueSeverity
    description: str
    found: Optional[str] = None
    should_be: Optional[str] = Field(None, alias="shouldBe")
    impact: Optional[str] = None
    fixed: bool = False

    @property
    def seconds(self) -> int:
        return parse_timestamp(self.timestamp)


class RetentionPoint(_WireModel):
    timestamp: str = Field("00:00", alias="time")
    value: float
    label: Optional[str] = None

    @field_validator('value')
    @classmethod
    def clamp_value(cls, v: float) -> float:
        return min(100.0, max(0.0, v))

    @property
    def seconds(self) -> int:
        return parse_timestamp(self.timestamp)


class MarketingAssessment(_WireModel):
    overall_score: Optional[float] = Field(None, alias="overallScore")
    hook_score: Optional[float] = Field(None, alias="hookScore")
    hook_feedback: Optional[str] = Field(None, alias="hookFeedback")
    cta_score: Optional[float] = Field(None, alias="ctaScore")
    cta_feedback: Optional[str] = Field(None, alias="ctaFeedback")
    retention_curve: List[RetentionPoint] = Field(default_factory=list, alias="retentionCurve")

    @field_validator('retention_curve', mode='before')
    @classmethod
    def drop_unusable_points(cls, points: Any) -> Any:
        # one bad point must not discard the whole reply
        if not isinstance(points, list):
            return points
        usable = []
        for point in points:
            if isinstance(point, RetentionPoint):
                usable.append(point)
                continue
            if not isinstance(point, dict):
                logger.warning(f"Dropping retention point that is not an object: {point!r}")
                continue
            value = point.get('value')
            time_text = point.get('time', point.get('timestamp'))
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                logger.warning(f"Dropping retention point without a usable value: {point!r}")
                continue
            if time_text is not None and not isinstance(time_text, str):
                logger.warning(f"Dropping retention point with a non-text time: {point!r}")
                continue
            usable.append(point)
        return usable


class PlatformFit(_WireModel):
    aspect_ratio_ok: bool = Field(alias="aspectRatio")
    duration_ok: bool = Field(alias="duration")
    thumbnail_quality: ThumbnailQuality = Field(alias="thumbnail")
    captions_present: bool = Field(alias="captions")


class SegmentResult(_WireModel):
    window: TimeWindow
    index: int = 0
    score: Optional[float] = None
    issues: List[Issue] = Field(default_factory=list)
    marketing: Optional[MarketingAssessment] = None
    platform_fit: Optional[PlatformFit] = Field(None, alias="platformFit")


class AnalysisReport(_WireModel):
    title: str = Field(alias="videoTitle")
    platform: str
    score: int
    duration: str = ""
    duration_seconds: int = Field(0, alias="durationSeconds")
    issues: List[Issue] = Field(default_factory=list)
    marketing: MarketingAssessment
    platform_fit: Optional[PlatformFit] = Field(None, alias="platformFit")

    def mark_issue_fixed(self, issue_id: str) -> bool:
        """Flips one issue to fixed. Returns False when the id is unknown."""
        for issue in self.issues:
            if issue.id == issue_id:
                issue.fixed = True
                return True
        return False
