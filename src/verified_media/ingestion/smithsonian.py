import logging
from typing import Optional

import httpx

from verified_media.core.entities import CandidateMetadata, FetchedImage
from verified_media.ingestion.base import ImageSource

logger = logging.getLogger(__name__)


class SmithsonianSource(ImageSource):
    name = "Smithsonian"
    SEARCH_URL = "https://api.si.edu/openaccess/api/v1.0/search"

    def __init__(self, api_key: Optional[str], **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def search(self, client: httpx.AsyncClient, search_term: str, year: Optional[int]) -> Optional[FetchedImage]:
        if not self.api_key:
            logger.info("Smithsonian API key missing, skipping")
            return None

        resp = await client.get(self.SEARCH_URL, params={
            "q": f"{search_term} AND online_media_type:Images",
            "rows": 10,
            "api_key": self.api_key,
        })
        resp.raise_for_status()

        rows = resp.json().get("response", {}).get("rows", [])
        for row in rows:
            content = row.get("content") or {}
            media = (content.get("descriptiveNonRepeating") or {}).get("online_media") or {}
            for item in media.get("media", []):
                if item.get("type") != "Images":
                    continue
                image_url = item.get("content")
                if not image_url:
                    continue

                image_bytes = await self._download(client, image_url)
                dates = (content.get("indexedStructured") or {}).get("date") or []
                return FetchedImage(
                    image_bytes=image_bytes,
                    metadata=CandidateMetadata(
                        search_term=search_term,
                        title=row.get("title"),
                        url=image_url,
                        date=dates[0] if dates else None,
                    ),
                )

        return None
