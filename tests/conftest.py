import io
import json
import random
import re
from functools import lru_cache
from typing import Dict, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from verified_media.core.entities import CandidateMetadata, FetchedImage
from verified_media.ingestion.base import ImageSource
from verified_media.processing.verifier import STYLE_PROMPT
from verified_media.services.config import parse_config
from verified_media.services.llm import OllamaVisionClient
from verified_media.services.storage import MemoryStore

SOURCES_YAML = {
    "sources": {
        "Library of Congress": {"type": "loc", "priority": 1, "reliability_score": 95, "timeout_ms": 15000},
        "Smithsonian": {"type": "smithsonian", "priority": 2, "reliability_score": 93, "timeout_ms": 15000},
        "Wikimedia Commons": {"type": "commons", "priority": 3, "reliability_score": 85, "timeout_ms": 12000},
        "Wikipedia": {"type": "wikipedia", "priority": 4, "reliability_score": 75, "timeout_ms": 10000},
    },
    "storage": {"backend": "memory"},
}

_SOURCE_LINE = re.compile(r"^Source: (.+)$", re.MULTILINE)


@lru_cache(maxsize=None)
def make_image(width: int, height: int, seed: int = 0, fmt: str = "PNG") -> bytes:
    """Random-noise image; noise keeps PNG output well above the 30KB floor."""
    noise = random.Random(seed).randbytes(width * height * 3)
    img = Image.frombytes("RGB", (width, height), noise)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def fetched(width: int = 900, height: int = 600, seed: int = 0, search_term: str = "test", **meta) -> FetchedImage:
    return FetchedImage(
        image_bytes=make_image(width, height, seed),
        metadata=CandidateMetadata(search_term=search_term, **meta),
    )


def mock_source(name: str, result: Optional[FetchedImage] = None, error: Optional[Exception] = None):
    source = MagicMock(spec=ImageSource)
    source.name = name
    if error is not None:
        source.fetch = AsyncMock(side_effect=error)
    else:
        source.fetch = AsyncMock(return_value=result)
    return source


def oracle_reply(verdicts: Dict[str, Tuple[str, float]], style: Optional[Dict[str, str]] = None):
    """
    Build an analyze() side effect answering per source name.
    Sources missing from verdicts get QUESTIONABLE/50.
    """
    style = style or {"type": "photograph", "era": "historical", "colorScheme": "black-and-white"}

    async def _analyze(prompt, image_bytes, system=""):
        if prompt == STYLE_PROMPT:
            return {"content": json.dumps(style), "latency_ms": 1}

        match = _SOURCE_LINE.search(prompt)
        source = match.group(1) if match else ""
        verdict, confidence = verdicts.get(source, ("QUESTIONABLE", 50))
        return {
            "content": json.dumps({
                "verdict": verdict,
                "confidence": confidence,
                "reasoning": f"{source} looks {verdict.lower()}",
                "visualDescription": "a photo",
            }),
            "latency_ms": 1,
        }

    return _analyze


@pytest.fixture
def config():
    return parse_config(SOURCES_YAML)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def mock_llm():
    client = MagicMock(spec=OllamaVisionClient)
    client.analyze = AsyncMock(side_effect=oracle_reply({}))
    return client
