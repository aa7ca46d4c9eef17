"""
Cheap technical pre-filter that runs before any AI call.
Checks resolution, file size, aspect ratio and format.
"""
import io
import logging
from dataclasses import dataclass
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from verified_media.core.entities import Candidate, QualityMeta
from verified_media.services.config import QualityConfig

logger = logging.getLogger(__name__)

DECODE_FAILURE = "quality check failed"


@dataclass(frozen=True)
class QualityCheck:
    passed: bool
    reason: str
    metadata: Optional[QualityMeta] = None


def _read_dimensions(image_bytes: bytes) -> QualityMeta:
    # Image.open only parses the header; verify() walks the data for truncation
    with Image.open(io.BytesIO(image_bytes)) as img:
        width, height = img.size
        fmt = (img.format or "").lower() or None
        img.verify()
    return QualityMeta(width=width, height=height, byte_size=len(image_bytes), format=fmt)


def check_image_quality(image_bytes: bytes, config: Optional[QualityConfig] = None) -> QualityCheck:
    """
    Decide whether an image is technically usable.
    Never raises; undecodable input is a rejection.
    """
    config = config or QualityConfig()

    if not image_bytes:
        return QualityCheck(passed=False, reason=DECODE_FAILURE)

    try:
        meta = _read_dimensions(image_bytes)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f"Image decode failed: {e}")
        return QualityCheck(passed=False, reason=DECODE_FAILURE)

    if meta.width <= 0 or meta.height <= 0:
        return QualityCheck(passed=False, reason=DECODE_FAILURE, metadata=meta)

    if meta.width < config.min_width or meta.height < config.min_height:
        return QualityCheck(
            passed=False,
            reason=f"Image too small ({meta.width}x{meta.height}, need {config.min_width}x{config.min_height})",
            metadata=meta,
        )

    if meta.byte_size < config.min_file_size:
        return QualityCheck(
            passed=False,
            reason=f"File too small ({meta.byte_size / 1024:.1f}KB, need {config.min_file_size / 1024:.0f}KB)",
            metadata=meta,
        )

    if meta.byte_size > config.max_file_size:
        return QualityCheck(
            passed=False,
            reason=f"File too large ({meta.byte_size / 1024 / 1024:.1f}MB, max {config.max_file_size / 1024 / 1024:.0f}MB)",
            metadata=meta,
        )

    aspect_ratio = meta.width / meta.height
    if aspect_ratio < config.min_aspect_ratio or aspect_ratio > config.max_aspect_ratio:
        return QualityCheck(
            passed=False,
            reason=f"Aspect ratio too extreme ({aspect_ratio:.2f})",
            metadata=meta,
        )

    if meta.format and meta.format in config.reject_formats:
        return QualityCheck(passed=False, reason=f"Format {meta.format} not allowed", metadata=meta)

    return QualityCheck(
        passed=True,
        reason=f"Quality OK ({meta.width}x{meta.height}, {meta.byte_size / 1024:.1f}KB)",
        metadata=meta,
    )


def filter_by_quality(candidates: List[Candidate], config: Optional[QualityConfig] = None) -> List[Candidate]:
    """
    Keep only candidates that pass the quality check, recording their dimensions.
    """
    passed: List[Candidate] = []

    for candidate in candidates:
        check = check_image_quality(candidate.image_bytes, config)
        if not check.passed:
            logger.info(f"Quality check failed for {candidate.source_name}: {check.reason}")
            continue

        candidate.quality_meta = check.metadata
        passed.append(candidate)
        logger.info(f"{candidate.source_name} passed quality ({check.reason})")

    logger.info(f"Quality filter: {len(candidates)} -> {len(passed)} candidates")
    return passed
