"""
Fetch lead images from Wikipedia articles
"""
from typing import Optional

import httpx

from verified_media.core.entities import CandidateMetadata, FetchedImage
from verified_media.ingestion.base import ImageSource


class WikipediaSource(ImageSource):
    name = "Wikipedia"
    API_URL = "https://en.wikipedia.org/w/api.php"
    THUMB_SIZE = 1200
    MAX_PAGES = 5

    async def search(self, client: httpx.AsyncClient, search_term: str, year: Optional[int]) -> Optional[FetchedImage]:
        query = f"{search_term} {year}" if year else search_term
        resp = await client.get(self.API_URL, params={
            "action": "query",
            "list": "search",
            "srsearch": query,
            "srlimit": self.MAX_PAGES,
            "format": "json",
        })
        resp.raise_for_status()

        results = resp.json().get("query", {}).get("search", [])

        # Try pages in relevance order until one has a lead image
        for hit in results:
            page_id = hit.get("pageid")
            if not page_id:
                continue

            page_resp = await client.get(self.API_URL, params={
                "action": "query",
                "pageids": page_id,
                "prop": "pageimages",
                "pithumbsize": self.THUMB_SIZE,
                "format": "json",
            })
            if page_resp.status_code != 200:
                continue

            page = page_resp.json().get("query", {}).get("pages", {}).get(str(page_id), {})
            image_url = (page.get("thumbnail") or {}).get("source")
            if not image_url:
                continue

            image_bytes = await self._download(client, image_url)
            return FetchedImage(
                image_bytes=image_bytes,
                metadata=CandidateMetadata(
                    search_term=search_term,
                    title=page.get("title") or hit.get("title"),
                    url=image_url,
                ),
            )

        return None
