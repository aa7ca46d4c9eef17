from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class Verdict(str, Enum):
    APPROVED = "APPROVED"
    QUESTIONABLE = "QUESTIONABLE"
    WRONG = "WRONG"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Event:
    """
    The historical fact being illustrated.
    """
    year: int
    description: str


@dataclass(frozen=True)
class CandidateMetadata:
    search_term: str
    title: Optional[str] = None
    url: Optional[str] = None
    date: Optional[str] = None


@dataclass(frozen=True)
class QualityMeta:
    width: int
    height: int
    byte_size: int
    format: Optional[str] = None


@dataclass(frozen=True)
class FetchedImage:
    """
    Raw payload returned by a source adapter.
    """
    image_bytes: bytes
    metadata: CandidateMetadata


@dataclass
class Candidate:
    """
    An unverified image fetched from one source for one event.
    """
    source_name: str
    image_bytes: bytes
    metadata: CandidateMetadata
    quality_meta: Optional[QualityMeta] = None


@dataclass(frozen=True)
class VerificationResult:
    verdict: Verdict
    confidence: float
    reasoning: str = ""
    visual_description: str = ""

    @classmethod
    def error(cls, reason: str) -> "VerificationResult":
        return cls(verdict=Verdict.ERROR, confidence=0.0, reasoning=reason)


@dataclass(frozen=True)
class StyleProfile:
    type: str = "unknown"
    era: str = "unknown"
    color_scheme: str = "unknown"

    def as_dict(self) -> Dict[str, str]:
        return {"type": self.type, "era": self.era, "color_scheme": self.color_scheme}


@dataclass(frozen=True)
class ScoredCandidate:
    """
    Candidate joined with its verification and style signals.
    """
    candidate: Candidate
    verification: VerificationResult
    style: StyleProfile
    style_score: float
    combined_score: float

    @property
    def source_name(self) -> str:
        return self.candidate.source_name

    def summary(self) -> Dict[str, Any]:
        return {
            "source": self.source_name,
            "verdict": self.verification.verdict.value,
            "confidence": self.verification.confidence,
            "style_score": round(self.style_score, 1),
            "combined_score": round(self.combined_score, 1),
            "reasoning": self.verification.reasoning,
        }


@dataclass(frozen=True)
class Accepted:
    image_bytes: bytes
    source: str
    confidence: float
    verdict: Verdict
    style_info: Dict[str, str]
    selection_id: str
    from_cache: bool = False
    metadata: Optional[CandidateMetadata] = None


@dataclass(frozen=True)
class Rejected:
    reason: str
    best_attempt: Optional[Dict[str, Any]] = None
    attempts: list = field(default_factory=list)


SelectionOutcome = Union[Accepted, Rejected]
