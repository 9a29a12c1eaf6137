from __future__ import annotations

from typing import Any, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field

from webevidence.research_core.extract.service import parse_datetime
from webevidence.research_core.models.interfaces import SearchHit, SearchMode, SearchProviderName
from webevidence.tools.search_provider import build_hits

EXA_BASE_URL = "https://api.exa.ai"
MAX_SNIPPET_LENGTH = 500


class ExaResult(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    url: str
    title: str | None = None
    text: str | None = None
    highlights: list[str] | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    score: float | None = None


class ExaResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    results: list[ExaResult] = []


class ExaSearchProvider:
    """Exa search (highlights only) and contents (full text)."""

    name = SearchProviderName.EXA
    default_requests_per_second = 5.0

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = EXA_BASE_URL,
        timeout: float = 30.0,
        excerpt_length: int = MAX_SNIPPET_LENGTH,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise RuntimeError("EXA_API_KEY is not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.excerpt_length = excerpt_length
        self._http_client = http_client

    async def _post(self, path: str, payload: dict[str, Any]) -> ExaResponse:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
        }

        async def _do_request(client: httpx.AsyncClient) -> Any:
            response = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                data = await _do_request(client)
        else:
            data = await _do_request(self._http_client)
        return ExaResponse.model_validate(data)

    async def search(
        self,
        query: str,
        *,
        max_results: int,
        include_domains: Sequence[str] = (),
        exclude_domains: Sequence[str] = (),
        mode: SearchMode = "discovery",
    ) -> list[SearchHit]:
        payload: dict[str, Any] = {
            "query": query,
            "numResults": max_results,
            "type": "auto",
        }
        if mode == "discovery":
            payload["contents"] = {"highlights": {"numSentences": 1, "highlightsPerUrl": 1}}
        if include_domains:
            payload["includeDomains"] = list(include_domains)
        if exclude_domains:
            payload["excludeDomains"] = list(exclude_domains)

        response = await self._post("/search", payload)
        return build_hits(
            response.results,
            lambda r: SearchHit(
                provider=self.name,
                query=query,
                url=r.url,
                title=r.title or "",
                excerpt=(" ".join(r.highlights or []) or r.text or "")[: self.excerpt_length],
                content=None,
                published_at=parse_datetime(r.published_date),
                provider_score=r.score,
                raw=r.model_dump(by_alias=True),
            ),
        )

    async def extract(self, urls: Sequence[str]) -> list[SearchHit]:
        if not urls:
            return []
        response = await self._post("/contents", {"urls": list(urls), "text": True})
        return build_hits(
            response.results,
            lambda r: SearchHit(
                provider=self.name,
                query=r.url,
                url=r.url,
                title=r.title or "",
                excerpt=(r.text or "")[: self.excerpt_length],
                content=r.text or None,
                published_at=parse_datetime(r.published_date),
                provider_score=r.score,
                raw=r.model_dump(by_alias=True),
            ),
        )
