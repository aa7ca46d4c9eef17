"""
Pydantic schemas for oracle responses and persisted documents.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from verified_media.core.entities import StyleProfile, Verdict, VerificationResult


class VerificationResponse(BaseModel):
    """
    Loosely-typed verification payload from the vision oracle.
    Every field has a default so partial responses still parse.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    verdict: str = Verdict.QUESTIONABLE.value
    confidence: float = 0.0
    reasoning: str = ""
    visual_description: str = Field(default="", alias="visualDescription")

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, value: Any) -> str:
        text = str(value or "").strip().upper()
        if text in (Verdict.APPROVED.value, Verdict.QUESTIONABLE.value, Verdict.WRONG.value):
            return text
        return Verdict.QUESTIONABLE.value

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        try:
            number = float(str(value).strip().rstrip("%"))
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return max(0.0, min(100.0, number))

    @field_validator("reasoning", "visual_description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def to_result(self) -> VerificationResult:
        return VerificationResult(
            verdict=Verdict(self.verdict),
            confidence=self.confidence,
            reasoning=self.reasoning,
            visual_description=self.visual_description,
        )


class StyleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "unknown"
    era: str = "unknown"
    color_scheme: str = Field(default="unknown", alias="colorScheme")

    @field_validator("type", "era", "color_scheme", mode="before")
    @classmethod
    def _coerce_tag(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip().lower()
        return text or "unknown"

    def to_profile(self) -> StyleProfile:
        return StyleProfile(type=self.type, era=self.era, color_scheme=self.color_scheme)


class EngagementMetrics(BaseModel):
    """Reported post metrics. Missing counts read as zero."""
    model_config = ConfigDict(extra="ignore")

    likes: int = Field(default=0, ge=0)
    retweets: int = Field(default=0, ge=0)
    replies: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)

    @field_validator("likes", "retweets", "replies", "impressions", mode="before")
    @classmethod
    def _missing_is_zero(cls, value: Any) -> Any:
        return 0 if value is None or value == "" else value


class CacheEntry(BaseModel):
    """
    Metadata of a previously accepted image. Bytes are never cached.
    """
    key: str
    source: str
    confidence: float
    verdict: str
    style_info: Dict[str, str] = {}
    cached_at: datetime
    last_used: datetime
    use_count: int = 1
    event_year: int
    event_description: str
    image_url: Optional[str] = None
    search_term: Optional[str] = None


class EngagementRecord(BaseModel):
    """
    One past selection and, once reported, its engagement metrics.
    """
    selection_id: str
    timestamp: datetime
    source_name: str
    confidence: float = 0.0
    verdict: str = "unknown"
    style: Optional[Dict[str, str]] = None
    likes: Optional[int] = None
    retweets: Optional[int] = None
    replies: Optional[int] = None
    impressions: Optional[int] = None
    updated_at: Optional[datetime] = None

    @property
    def has_metrics(self) -> bool:
        return self.likes is not None

    @property
    def engagement_score(self) -> float:
        return (self.likes or 0) + (self.retweets or 0) * 2 + (self.replies or 0) * 1.5
