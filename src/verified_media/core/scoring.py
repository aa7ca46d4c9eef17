"""
Module to score and rank verified candidates
"""
from typing import List, Sequence

from verified_media.core.entities import ScoredCandidate, Verdict, VerificationResult

CONFIDENCE_WEIGHT = 0.7
STYLE_WEIGHT = 0.3
ACCEPT_CONFIDENCE = 70


def combined_score(confidence: float, style_score: float) -> float:
    return CONFIDENCE_WEIGHT * confidence + STYLE_WEIGHT * style_score


def passes_threshold(
    verification: VerificationResult,
    min_confidence: float = ACCEPT_CONFIDENCE,
) -> bool:
    """
    Only an APPROVED verdict at or above the confidence floor is accepted.
    Style never rescues a failing verdict.
    """
    return (
        verification.verdict == Verdict.APPROVED
        and verification.confidence >= min_confidence
    )


def rank_candidates(
    scored: Sequence[ScoredCandidate],
    source_order: Sequence[str],
) -> List[ScoredCandidate]:
    """
    Sort by combined score, highest first. Equal scores fall back to the
    declared source priority so arrival order never affects the result.
    """
    positions = {name: index for index, name in enumerate(source_order)}

    def _key(item: ScoredCandidate):
        return (-item.combined_score, positions.get(item.source_name, len(positions)))

    return sorted(scored, key=_key)
