"""
Ingest photographs from the Library of Congress JSON API
"""
from typing import Optional

import httpx

from verified_media.core.entities import CandidateMetadata, FetchedImage
from verified_media.ingestion.base import ImageSource


class LibraryOfCongressSource(ImageSource):
    name = "Library of Congress"
    SEARCH_URL = "https://www.loc.gov/photos/"
    YEAR_WINDOW = 2

    async def search(self, client: httpx.AsyncClient, search_term: str, year: Optional[int]) -> Optional[FetchedImage]:
        params = {"q": search_term, "fo": "json", "c": 10}
        if year:
            params["dates"] = f"{year - self.YEAR_WINDOW}/{year + self.YEAR_WINDOW}"

        resp = await client.get(self.SEARCH_URL, params=params)
        resp.raise_for_status()

        for item in resp.json().get("results", []):
            image_urls = item.get("image_url") or []
            if not image_urls:
                continue

            # Last variant is the largest rendition
            image_url = image_urls[-1].split("#", 1)[0]
            if image_url.startswith("//"):
                image_url = "https:" + image_url

            image_bytes = await self._download(client, image_url)
            return FetchedImage(
                image_bytes=image_bytes,
                metadata=CandidateMetadata(
                    search_term=search_term,
                    title=item.get("title"),
                    url=image_url,
                    date=item.get("date"),
                ),
            )

        return None
