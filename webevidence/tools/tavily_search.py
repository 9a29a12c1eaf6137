from __future__ import annotations

from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict
from tavily import AsyncTavilyClient

from webevidence.research_core.extract.service import parse_datetime
from webevidence.research_core.models.interfaces import SearchHit, SearchMode, SearchProviderName
from webevidence.tools.search_provider import build_hits

MAX_SNIPPET_LENGTH = 500


class TavilyResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    title: str | None = None
    content: str | None = None
    raw_content: str | None = None
    published_date: str | None = None
    score: float | None = None


class TavilyResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    results: list[TavilyResult] = []


class TavilySearchProvider:
    """Tavily search (snippets) and extract (full page content)."""

    name = SearchProviderName.TAVILY
    default_requests_per_second = 10.0

    def __init__(
        self,
        api_key: str,
        *,
        excerpt_length: int = MAX_SNIPPET_LENGTH,
        client: Any | None = None,
    ):
        if not api_key and client is None:
            raise RuntimeError("TAVILY_API_KEY is not configured")
        self._client = client or AsyncTavilyClient(api_key=api_key)
        self.excerpt_length = excerpt_length

    async def search(
        self,
        query: str,
        *,
        max_results: int,
        include_domains: Sequence[str] = (),
        exclude_domains: Sequence[str] = (),
        mode: SearchMode = "discovery",
    ) -> list[SearchHit]:
        kwargs: dict[str, Any] = {
            "query": query,
            "search_depth": "advanced" if mode == "discovery" else "basic",
            "max_results": max_results,
            "include_raw_content": False,
        }
        if include_domains:
            kwargs["include_domains"] = list(include_domains)
        if exclude_domains:
            kwargs["exclude_domains"] = list(exclude_domains)

        response = TavilyResponse.model_validate(await self._client.search(**kwargs))
        return build_hits(
            response.results,
            lambda r: SearchHit(
                provider=self.name,
                query=query,
                url=r.url,
                title=r.title or "",
                excerpt=(r.content or "")[: self.excerpt_length],
                content=None,
                published_at=parse_datetime(r.published_date),
                provider_score=r.score,
                raw=r.model_dump(),
            ),
        )

    async def extract(self, urls: Sequence[str]) -> list[SearchHit]:
        if not urls:
            return []
        response = TavilyResponse.model_validate(await self._client.extract(urls=list(urls)))
        return build_hits(
            response.results,
            lambda r: SearchHit(
                provider=self.name,
                query=r.url,
                url=r.url,
                title=r.title or "",
                excerpt=(r.raw_content or "")[: self.excerpt_length],
                content=r.raw_content or None,
                published_at=parse_datetime(r.published_date),
                provider_score=None,
                raw=r.model_dump(),
            ),
        )
