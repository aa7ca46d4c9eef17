import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from verified_media.core.entities import (
    Candidate,
    Event,
    ScoredCandidate,
    StyleProfile,
    VerificationResult,
)
from verified_media.core.schemas import StyleResponse, VerificationResponse
from verified_media.core.scoring import combined_score
from verified_media.processing.style_preferences import DEFAULT_SCORE, StylePreferences
from verified_media.services.llm import OllamaVisionClient

logger = logging.getLogger(__name__)

VERIFY_SYSTEM_PROMPT = "Expert at verifying historical image accuracy using visual analysis. Respond in JSON."
STYLE_SYSTEM_PROMPT = "You classify the visual style of images. Respond in JSON."

STYLE_PROMPT = """Analyze this image's visual style. Respond in JSON:
{
  "type": "photograph" | "illustration" | "painting" | "engraving" | "map" | "document",
  "era": "modern" | "vintage" | "historical" | "ancient",
  "colorScheme": "color" | "black-and-white" | "sepia"
}"""


def _extract_json(content: str) -> str:
    """
    Extract JSON from LLM response, stripping markdown code blocks if present.
    """
    content = content.strip()

    # Remove markdown code blocks (```json ... ``` or ``` ... ```)
    pattern = r'^```(?:json)?\s*\n?(.*?)\n?```$'
    match = re.match(pattern, content, re.DOTALL)
    if match:
        return match.group(1).strip()

    # Try to find a JSON object in the content
    object_match = re.search(r'\{.*\}', content, re.DOTALL)
    if object_match:
        return object_match.group(0)

    return content


def _parse_object(content: str) -> Dict[str, Any]:
    parsed = json.loads(_extract_json(content))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def build_verification_prompt(candidate: Candidate, event: Event, generated_text: str) -> str:
    meta = candidate.metadata
    lines = [
        "You are verifying that an image matches a historical event. Be STRICT but FAIR.",
        "",
        "EVENT:",
        f"Year: {event.year}",
        f"Description: {event.description}",
        "",
        "TWEET CONTENT:",
        f'"{generated_text}"',
        "",
        "IMAGE METADATA:",
        f"Source: {candidate.source_name}",
        f"Search Term Used: {meta.search_term}",
    ]
    if meta.url:
        lines.append(f"URL: {meta.url}")
    if meta.title:
        lines.append(f"Title: {meta.title}")
    if meta.date:
        lines.append(f"Date: {meta.date}")

    lines.append("""
ANALYZE THE ACTUAL IMAGE:
1. Look at what the image actually shows
2. Check if it matches the person/event/time period described
3. Look for name mismatches (e.g., "King Michael" vs "Queen Mary" = WRONG)
4. Check for anachronisms (modern photos for old events = WRONG)
5. Generic historical photos from correct era = OK if relevant

Respond in JSON:
{
  "confidence": 85,
  "verdict": "APPROVED" | "QUESTIONABLE" | "WRONG",
  "reasoning": "Specific explanation based on what you SEE in the image",
  "visualDescription": "Brief description of what the image shows"
}

GUIDELINES:
- APPROVED (70-100): Image clearly shows the event/person/era, or is a relevant historical photo from the correct period
- QUESTIONABLE (50-69): Generic historical image, loosely related but not specific
- WRONG (0-49): Wrong person, wrong era, modern photo, or completely unrelated""")

    return "\n".join(lines)


class MediaVerifier:
    """
    Adapter around the vision oracle.
    verify() and style() never raise: failures become ERROR or unknown defaults.
    """

    def __init__(self, llm: OllamaVisionClient, style_preferences: Optional[StylePreferences] = None):
        self.llm = llm
        self.style_preferences = style_preferences

    async def verify(self, candidate: Candidate, event: Event, generated_text: str) -> VerificationResult:
        prompt = build_verification_prompt(candidate, event, generated_text)

        try:
            response = await self.llm.analyze(prompt, candidate.image_bytes, system=VERIFY_SYSTEM_PROMPT)
            parsed = _parse_object(response["content"])
            result = VerificationResponse.model_validate(parsed).to_result()
        except (ValueError, ValidationError) as e:
            logger.warning(f"Malformed verification response for {candidate.source_name}: {e}")
            return VerificationResult.error(f"Malformed oracle response: {e}")
        except Exception as e:
            logger.error(f"Verification error for {candidate.source_name}: {e}")
            return VerificationResult.error(str(e))

        logger.info(
            f"{candidate.source_name}: {result.verdict.value} ({result.confidence}%) - {result.reasoning}"
        )
        return result

    async def style(self, candidate: Candidate) -> StyleProfile:
        try:
            response = await self.llm.analyze(STYLE_PROMPT, candidate.image_bytes, system=STYLE_SYSTEM_PROMPT)
            parsed = _parse_object(response["content"])
            return StyleResponse.model_validate(parsed).to_profile()
        except Exception as e:
            logger.warning(f"Style analysis failed for {candidate.source_name}: {e}")
            return StyleProfile()

    async def _style_score(self, profile: StyleProfile) -> float:
        if self.style_preferences is None:
            return DEFAULT_SCORE
        try:
            return await self.style_preferences.score(profile)
        except Exception as e:
            logger.warning(f"Style preference lookup failed: {e}")
            return DEFAULT_SCORE

    async def score(self, candidate: Candidate, event: Event, generated_text: str) -> ScoredCandidate:
        """
        Verify and classify a candidate concurrently, then combine the signals.
        """
        verification, style = await asyncio.gather(
            self.verify(candidate, event, generated_text),
            self.style(candidate),
        )
        style_score = await self._style_score(style)

        return ScoredCandidate(
            candidate=candidate,
            verification=verification,
            style=style,
            style_score=style_score,
            combined_score=combined_score(verification.confidence, style_score),
        )
