from __future__ import annotations

import json

import httpx
import pytest

from webevidence.research_core.models.interfaces import SearchProviderName
from webevidence.tools.exa_search import ExaSearchProvider


class Recorder:
    def __init__(self, payload: dict, status: int = 200):
        self.payload = payload
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_provider(recorder: Recorder, **kwargs) -> tuple[ExaSearchProvider, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return ExaSearchProvider("exa-test", base_url="https://api.exa.test/", http_client=client, **kwargs), client


def test_missing_api_key_raises():
    with pytest.raises(RuntimeError, match="EXA_API_KEY"):
        ExaSearchProvider("")


@pytest.mark.asyncio
async def test_search_posts_query_and_maps_highlights():
    recorder = Recorder(
        {
            "results": [
                {
                    "url": "https://example.com/paper",
                    "title": "Paper",
                    "highlights": ["First highlight.", "Second highlight."],
                    "publishedDate": "2023-05-04T00:00:00.000Z",
                    "score": 0.42,
                },
                {"url": "https://example.com/no-highlights", "title": "Plain", "highlights": None, "text": "Body text"},
                {"url": "javascript:alert(1)", "title": "Bad"},
            ]
        }
    )
    provider, client = make_provider(recorder)

    async with client:
        hits = await provider.search(
            "perovskite",
            max_results=4,
            include_domains=["example.com"],
            exclude_domains=["spam.example.net"],
        )

    request = recorder.requests[0]
    assert str(request.url) == "https://api.exa.test/search"
    assert request.headers["x-api-key"] == "exa-test"
    assert recorder.last_body == {
        "query": "perovskite",
        "numResults": 4,
        "type": "auto",
        "contents": {"highlights": {"numSentences": 1, "highlightsPerUrl": 1}},
        "includeDomains": ["example.com"],
        "excludeDomains": ["spam.example.net"],
    }
    assert [h.url for h in hits] == ["https://example.com/paper", "https://example.com/no-highlights"]
    assert hits[0].provider is SearchProviderName.EXA
    assert hits[0].excerpt == "First highlight. Second highlight."
    assert hits[0].published_at.year == 2023
    assert hits[0].provider_score == 0.42
    assert hits[0].content is None
    assert hits[1].excerpt == "Body text"


@pytest.mark.asyncio
async def test_search_omits_empty_filters():
    recorder = Recorder({"results": []})
    provider, client = make_provider(recorder)

    async with client:
        assert await provider.search("q", max_results=2) == []

    assert "includeDomains" not in recorder.last_body
    assert "excludeDomains" not in recorder.last_body


@pytest.mark.asyncio
async def test_extract_requests_full_text():
    recorder = Recorder({"results": [{"url": "https://example.com/a", "title": "A", "text": "Full text " * 80}]})
    provider, client = make_provider(recorder, excerpt_length=20)

    async with client:
        hits = await provider.extract(["https://example.com/a"])

    assert str(recorder.requests[0].url) == "https://api.exa.test/contents"
    assert recorder.last_body == {"urls": ["https://example.com/a"], "text": True}
    assert hits[0].content.startswith("Full text")
    assert len(hits[0].excerpt) == 20


@pytest.mark.asyncio
async def test_http_errors_propagate():
    recorder = Recorder({"error": "unauthorized"}, status=401)
    provider, client = make_provider(recorder)

    async with client:
        with pytest.raises(httpx.HTTPStatusError):
            await provider.search("q", max_results=1)
