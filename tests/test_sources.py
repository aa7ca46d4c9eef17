import httpx
import pytest

from conftest import SOURCES_YAML, make_image
from verified_media.ingestion.library_of_congress import LibraryOfCongressSource
from verified_media.ingestion.smithsonian import SmithsonianSource
from verified_media.ingestion.source_factory import create_image_source, create_sources_from_config
from verified_media.ingestion.wikimedia_commons import WikimediaCommonsSource
from verified_media.ingestion.wikipedia import WikipediaSource
from verified_media.services.config import SourceConfig, parse_config

IMAGE = make_image(900, 600, seed=21)
IMAGE_URL = "https://upload.wikimedia.org/wikipedia/commons/apollo.jpg"


def wikipedia_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "upload.wikimedia.org":
        return httpx.Response(200, content=IMAGE)

    params = request.url.params
    if params.get("list") == "search":
        assert params["srsearch"] == "Apollo 11 moon landing 1969"
        return httpx.Response(200, json={"query": {"search": [
            {"pageid": 1, "title": "No image page"},
            {"pageid": 2, "title": "Apollo 11"},
        ]}})
    if params.get("prop") == "pageimages":
        page_id = params["pageids"]
        page = {"title": "Apollo 11", "thumbnail": {"source": IMAGE_URL}} if page_id == "2" else {"title": "No image page"}
        return httpx.Response(200, json={"query": {"pages": {page_id: page}}})
    return httpx.Response(404)


@pytest.mark.asyncio
async def test_wikipedia_fetches_first_page_with_lead_image():
    source = WikipediaSource(transport=httpx.MockTransport(wikipedia_handler))

    result = await source.fetch("Apollo 11 moon landing", 1969)

    assert result.image_bytes == IMAGE
    assert result.metadata.title == "Apollo 11"
    assert result.metadata.url == IMAGE_URL
    assert result.metadata.search_term == "Apollo 11 moon landing"


@pytest.mark.asyncio
async def test_wikipedia_no_results():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"query": {"search": []}}))
    assert await WikipediaSource(transport=transport).fetch("nothing") is None


@pytest.mark.asyncio
async def test_commons_skips_non_bitmap_files():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "upload.wikimedia.org":
            return httpx.Response(200, content=IMAGE)
        return httpx.Response(200, json={"query": {"pages": {
            "10": {"index": 1, "title": "File:Diagram.svg", "imageinfo": [{"mime": "image/svg+xml", "url": "https://upload.wikimedia.org/d.svg"}]},
            "11": {"index": 2, "title": "File:Apollo.jpg", "imageinfo": [{
                "mime": "image/jpeg",
                "url": "https://upload.wikimedia.org/full.jpg",
                "thumburl": IMAGE_URL,
                "extmetadata": {"DateTimeOriginal": {"value": "1969-07-20"}},
            }]},
        }}})

    result = await WikimediaCommonsSource(transport=httpx.MockTransport(handler)).fetch("Apollo 11")

    assert result.metadata.title == "Apollo.jpg"
    assert result.metadata.url == IMAGE_URL
    assert result.metadata.date == "1969-07-20"


@pytest.mark.asyncio
async def test_transport_errors_never_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert await LibraryOfCongressSource(transport=httpx.MockTransport(handler)).fetch("Apollo", 1969) is None


@pytest.mark.asyncio
async def test_server_errors_never_raise():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    assert await WikipediaSource(transport=transport).fetch("Apollo") is None


@pytest.mark.asyncio
async def test_failed_image_download_never_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "upload.wikimedia.org":
            return httpx.Response(404)
        return wikipedia_handler(request)

    source = WikipediaSource(transport=httpx.MockTransport(handler))
    assert await source.fetch("Apollo 11 moon landing", 1969) is None


@pytest.mark.asyncio
async def test_smithsonian_without_key_is_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    source = SmithsonianSource(api_key=None, transport=httpx.MockTransport(handler))
    assert await source.fetch("Apollo") is None


def test_factory_uses_registry_names_and_timeouts():
    source = create_image_source(SourceConfig(name="Wiki (en)", type="wikipedia", timeout_ms=8000))

    assert isinstance(source, WikipediaSource)
    assert source.name == "Wiki (en)"
    assert source.timeout == 8.0

    with pytest.raises(ValueError):
        create_image_source(SourceConfig(name="Flickr", type="flickr"))


def test_factory_builds_enabled_sources():
    sources = create_sources_from_config(parse_config(SOURCES_YAML))

    assert list(sources) == ["Library of Congress", "Smithsonian", "Wikimedia Commons", "Wikipedia"]
    assert isinstance(sources["Library of Congress"], LibraryOfCongressSource)
