"""
Base classes for image sources
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from verified_media.core.entities import FetchedImage
from verified_media.core.errors import SourceFetchError

logger = logging.getLogger(__name__)

USER_AGENT = "verified-media/0.1 (historical image selection)"
MAX_DOWNLOAD_BYTES = 20 * 1024 * 1024


class ImageSource(ABC):
    """
    Base interface for all image sources.
    """

    name: str

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=self.transport,
        )

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        resp = await client.get(url)
        if resp.status_code != 200:
            raise SourceFetchError(self.name, f"image download returned {resp.status_code}")
        if not resp.content:
            raise SourceFetchError(self.name, "empty image payload")
        if len(resp.content) > MAX_DOWNLOAD_BYTES:
            raise SourceFetchError(self.name, f"image payload too large ({len(resp.content)} bytes)")
        return resp.content

    @abstractmethod
    async def search(self, client: httpx.AsyncClient, search_term: str, year: Optional[int]) -> Optional[FetchedImage]:
        raise NotImplementedError

    async def fetch(self, search_term: str, year: Optional[int] = None) -> Optional[FetchedImage]:
        """
        Fetch the best image for a search term.
        Returns None when nothing usable is found. Must NEVER raise.
        """
        try:
            async with self._client() as client:
                result = await self.search(client, search_term, year)
        except (httpx.HTTPError, SourceFetchError, ValueError, KeyError, TypeError) as e:
            logger.info(f"{self.name} failed: {e}")
            return None

        if result is None:
            logger.info(f"{self.name} returned nothing for '{search_term}'")
        return result
