from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from verified_media.core.errors import OracleError
from verified_media.services.llm import OllamaVisionClient


def client_with(side_effect, max_retries=3):
    client = OllamaVisionClient("http://localhost:11434/v1/", "llama3.2-vision", max_retries=max_retries, retry_delay=0)
    client.llm = MagicMock()
    client.llm.ainvoke = AsyncMock(side_effect=side_effect)
    return client


def test_base_url_is_normalized():
    assert client_with([]).base_url == "http://localhost:11434"


@pytest.mark.asyncio
async def test_analyze_sends_image_and_system_prompt():
    client = client_with([AIMessage(content='{"verdict": "APPROVED"}')])

    result = await client.analyze("Is this the Moon?", b"\xff\xd8jpeg", system="Respond in JSON.")

    assert result["content"] == '{"verdict": "APPROVED"}'
    assert result["latency_ms"] >= 0

    messages = client.llm.ainvoke.await_args.args[0]
    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)
    image_block = messages[1].content[1]
    assert image_block["image_url"].startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_connection_errors_are_retried():
    client = client_with([ConnectionError("connection refused"), AIMessage(content="{}")])

    result = await client.analyze("prompt", b"img")

    assert result["content"] == "{}"
    assert client.llm.ainvoke.await_count == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    client = client_with(ConnectionError("connection refused"), max_retries=2)

    with pytest.raises(OracleError):
        await client.analyze("prompt", b"img")
    assert client.llm.ainvoke.await_count == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    client = client_with(ValueError("model 'llama3.2-vision' not found"))

    with pytest.raises(OracleError):
        await client.analyze("prompt", b"img")
    assert client.llm.ainvoke.await_count == 1


@pytest.mark.asyncio
async def test_empty_response_is_an_error():
    client = client_with([AIMessage(content="  ")])

    with pytest.raises(OracleError):
        await client.analyze("prompt", b"img")
