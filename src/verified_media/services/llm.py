import asyncio
import base64
import logging
import time
from typing import Any, Dict, List

import httpx
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from verified_media.core.errors import OracleError

logger = logging.getLogger(__name__)

CONNECTION_MARKERS = ("connection", "connect", "refused", "unreachable")


def _normalize_base_url(base_url: str) -> str:
    # ChatOllama talks to the native API, not the OpenAI-compatible /v1 one
    base_url = base_url.rstrip("/")
    if base_url.endswith("/v1"):
        base_url = base_url[:-3]
    return base_url


def _is_connection_error(error: Exception) -> bool:
    if isinstance(error, (httpx.ConnectError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in CONNECTION_MARKERS)


class OllamaVisionClient:
    """
    Vision-model client over ChatOllama in JSON mode.
    Connection failures and timeouts are retried with linear backoff;
    anything else surfaces immediately as OracleError.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
    ):
        self.base_url = _normalize_base_url(base_url)
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            format="json",
        )

    async def _invoke_with_retry(self, messages: List[BaseMessage]) -> Any:
        failure = "no attempts made"

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
            except asyncio.TimeoutError:
                failure = f"timed out after {self.timeout:.0f}s"
            except Exception as e:
                if not _is_connection_error(e):
                    raise OracleError(f"{self.model} failed: {e}") from e
                failure = f"connection error: {e}"

            logger.warning(
                f"Vision call {attempt}/{self.max_retries} {failure} (base_url={self.base_url}, model={self.model})"
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise OracleError(f"{self.model} unavailable after {self.max_retries} attempts: {failure}")

    async def analyze(self, prompt: str, image_bytes: bytes, system: str = "") -> Dict[str, Any]:
        """
        Ask the vision model about one image.
        Returns the raw message, its text content and the call latency.
        """
        started = time.perf_counter()

        data_url = "data:image/jpeg;base64," + base64.b64encode(image_bytes).decode("ascii")
        messages: List[BaseMessage] = [SystemMessage(content=system)] if system else []
        messages.append(HumanMessage(content=[
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": data_url},
        ]))

        response = await self._invoke_with_retry(messages)
        content = response.content if isinstance(response.content, str) else ""
        if not content.strip():
            raise OracleError(f"{self.model} returned an empty response")

        return {
            "raw": response,
            "content": content,
            "latency_ms": int((time.perf_counter() - started) * 1000),
        }

    async def health_check(self) -> bool:
        """Probe /api/tags to confirm the server is up."""
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False

        if resp.status_code != 200:
            logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
            return False
        return True
