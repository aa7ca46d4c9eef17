from typing import Optional

import httpx

from verified_media.core.entities import CandidateMetadata, FetchedImage
from verified_media.ingestion.base import ImageSource

ALLOWED_MIME = ("image/jpeg", "image/png")


class WikimediaCommonsSource(ImageSource):
    name = "Wikimedia Commons"
    API_URL = "https://commons.wikimedia.org/w/api.php"
    SCALED_WIDTH = 1600

    async def search(self, client: httpx.AsyncClient, search_term: str, year: Optional[int]) -> Optional[FetchedImage]:
        resp = await client.get(self.API_URL, params={
            "action": "query",
            "generator": "search",
            "gsrsearch": f"filetype:bitmap {search_term}",
            "gsrnamespace": 6,  # File:
            "gsrlimit": 10,
            "prop": "imageinfo",
            "iiprop": "url|mime|size|extmetadata",
            "iiurlwidth": self.SCALED_WIDTH,
            "format": "json",
        })
        resp.raise_for_status()

        pages = resp.json().get("query", {}).get("pages", {})
        # generator results carry their search rank in "index"
        for page in sorted(pages.values(), key=lambda p: p.get("index", 0)):
            info = (page.get("imageinfo") or [{}])[0]
            if info.get("mime") not in ALLOWED_MIME:
                continue

            image_url = info.get("thumburl") or info.get("url")
            if not image_url:
                continue

            date = ((info.get("extmetadata") or {}).get("DateTimeOriginal") or {}).get("value")
            image_bytes = await self._download(client, image_url)
            return FetchedImage(
                image_bytes=image_bytes,
                metadata=CandidateMetadata(
                    search_term=search_term,
                    title=page.get("title", "").removeprefix("File:"),
                    url=image_url,
                    date=date,
                ),
            )

        return None
