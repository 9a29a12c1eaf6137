from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from webevidence.research_core.models.interfaces import SearchProviderName
from webevidence.tools.search_provider import SearchProvider
from webevidence.tools.tavily_search import TavilySearchProvider


def test_missing_api_key_raises():
    with pytest.raises(RuntimeError, match="TAVILY_API_KEY"):
        TavilySearchProvider("")


def test_provider_satisfies_protocol():
    provider = TavilySearchProvider("", client=AsyncMock())
    assert isinstance(provider, SearchProvider)
    assert provider.name is SearchProviderName.TAVILY


@pytest.mark.asyncio
async def test_search_maps_results_and_passes_filters():
    client = AsyncMock()
    client.search.return_value = {
        "query": "solar",
        "results": [
            {
                "url": "https://example.com/solar",
                "title": "Solar",
                "content": "x" * 800,
                "published_date": "2024-02-01T00:00:00Z",
                "score": 0.87,
            },
            {"url": "not a url", "title": "Broken"},
            {"url": "https://example.org/wind", "title": None, "content": None},
        ],
    }
    provider = TavilySearchProvider("tvly-test", client=client)

    hits = await provider.search(
        "solar",
        max_results=3,
        include_domains=["example.com"],
        exclude_domains=[],
    )

    client.search.assert_awaited_once_with(
        query="solar",
        search_depth="advanced",
        max_results=3,
        include_raw_content=False,
        include_domains=["example.com"],
    )
    assert [h.url for h in hits] == ["https://example.com/solar", "https://example.org/wind"]
    first = hits[0]
    assert first.provider is SearchProviderName.TAVILY
    assert first.query == "solar"
    assert first.title == "Solar"
    assert len(first.excerpt) == 500
    assert first.content is None
    assert first.provider_score == 0.87
    assert first.published_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert hits[1].title == ""
    assert hits[1].excerpt == ""


@pytest.mark.asyncio
async def test_search_handles_empty_response():
    client = AsyncMock()
    client.search.return_value = {"results": []}
    provider = TavilySearchProvider("tvly-test", client=client)

    assert await provider.search("nothing", max_results=5) == []


@pytest.mark.asyncio
async def test_extract_returns_full_content():
    client = AsyncMock()
    client.extract.return_value = {
        "results": [{"url": "https://example.com/a", "raw_content": "Full page text " * 100}],
        "failed_results": [{"url": "https://example.com/b", "error": "blocked"}],
    }
    provider = TavilySearchProvider("tvly-test", client=client, excerpt_length=50)

    hits = await provider.extract(["https://example.com/a", "https://example.com/b"])

    client.extract.assert_awaited_once_with(urls=["https://example.com/a", "https://example.com/b"])
    assert len(hits) == 1
    assert hits[0].content.startswith("Full page text")
    assert len(hits[0].excerpt) == 50


@pytest.mark.asyncio
async def test_extract_without_urls_makes_no_call():
    client = AsyncMock()
    provider = TavilySearchProvider("tvly-test", client=client)

    assert await provider.extract([]) == []
    client.extract.assert_not_awaited()


@pytest.mark.asyncio
async def test_client_errors_propagate():
    client = AsyncMock()
    client.search.side_effect = RuntimeError("quota exceeded")
    provider = TavilySearchProvider("tvly-test", client=client)

    with pytest.raises(RuntimeError):
        await provider.search("solar", max_results=1)
