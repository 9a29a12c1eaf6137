from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

from webevidence.config import DEFAULT_TOPIC_DOMAINS
from webevidence.research_core.models.interfaces import SearchHit, SearchMode, SearchProviderName
from webevidence.services.logger import log_event, log_provider_call, logger
from webevidence.services.rate_limiter import RateLimiter, build_rate_limiters
from webevidence.tools import web_utils
from webevidence.tools.exa_search import ExaSearchProvider
from webevidence.tools.search_provider import SearchProvider
from webevidence.tools.tavily_search import TavilySearchProvider

DEFAULT_MAX_RESULTS = 10


def resolve_domain_filters(
    domains: Iterable[str],
    topic_domains: Mapping[str, Sequence[str]] = DEFAULT_TOPIC_DOMAINS,
) -> list[str]:
    """Expand topic keywords to hostnames and pass FQDNs through.

    Tokens that are neither a known topic nor contain a dot are dropped.
    """
    resolved: list[str] = []
    for domain in domains:
        token = domain.strip().lower()
        if not token:
            continue
        if token in topic_domains:
            resolved.extend(d.lower() for d in topic_domains[token])
        elif "." in token:
            resolved.append(token)
    return list(dict.fromkeys(resolved))


def dedupe_hits(hits: Iterable[SearchHit]) -> list[SearchHit]:
    """Keep the first hit per pre-fetch dedup key."""
    seen: set[str] = set()
    unique: list[SearchHit] = []
    for hit in hits:
        key = web_utils.dedupe_key_for_url(hit.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(hit)
    return unique


class SearchGateway:
    """Fans a query out to every provider and merges what comes back.

    Providers are called in parallel and in isolation: a provider that fails
    or times out contributes zero hits. Merge order is the ``providers``
    order, which makes first-seen dedup deterministic.
    """

    def __init__(
        self,
        providers: Sequence[SearchProvider],
        *,
        rate_limiters: Mapping[str, RateLimiter] | None = None,
        topic_domains: Mapping[str, Sequence[str]] | None = None,
        timeout: float = 30.0,
    ):
        if not providers:
            raise ValueError("SearchGateway needs at least one provider")
        self.providers = list(providers)
        self.topic_domains = dict(topic_domains if topic_domains is not None else DEFAULT_TOPIC_DOMAINS)
        self.timeout = timeout

        limiters = dict(rate_limiters or {})
        self._limiters: dict[str, RateLimiter] = {}
        for provider in self.providers:
            key = SearchProviderName(provider.name).value
            self._limiters[key] = limiters.get(key) or RateLimiter(provider.default_requests_per_second)

    def limiter_for(self, provider: SearchProvider) -> RateLimiter:
        return self._limiters[SearchProviderName(provider.name).value]

    async def search_all(
        self,
        query: str | None = None,
        *,
        urls: Sequence[str] | None = None,
        mode: SearchMode = "discovery",
        max_results: int = DEFAULT_MAX_RESULTS,
        include_domains: Sequence[str] | None = None,
        exclude_domains: Sequence[str] | None = None,
    ) -> list[SearchHit]:
        if mode == "enrich":
            if not urls:
                raise ValueError("urls are required for enrich mode")
            return await self._enrich(urls)
        if mode != "discovery":
            raise ValueError(f"Unsupported search mode: {mode!r}")
        if not query or not query.strip():
            raise ValueError("query is required for discovery mode")
        if max_results <= 0:
            raise ValueError("max_results must be positive")

        include = resolve_domain_filters(include_domains or [], self.topic_domains)
        exclude = resolve_domain_filters(exclude_domains or [], self.topic_domains)
        per_provider = math.ceil(max_results / len(self.providers))

        combined = await self._discover(query, per_provider, include, exclude)
        if not combined and include_domains:
            log_event(
                "search_domain_fallback",
                "no results with domain filters; retrying without include filter",
                query=query,
                include_domains=include,
            )
            combined = await self._discover(query, per_provider, [], exclude)

        deduped = dedupe_hits(combined)
        logger.info(
            "search_all %r: %d hits, %d after dedup, returning %d",
            query,
            len(combined),
            len(deduped),
            min(len(deduped), max_results),
        )
        return deduped[:max_results]

    async def _discover(
        self,
        query: str,
        per_provider: int,
        include: list[str],
        exclude: list[str],
    ) -> list[SearchHit]:
        return await self._fan_out(
            "search",
            lambda provider: provider.search(
                query,
                max_results=per_provider,
                include_domains=include,
                exclude_domains=exclude,
                mode="discovery",
            ),
        )

    async def _enrich(self, urls: Sequence[str]) -> list[SearchHit]:
        valid = list(dict.fromkeys(u for u in urls if web_utils.is_valid_url(u)))
        if len(valid) < len(urls):
            logger.debug("Dropped %d invalid or repeated enrich urls", len(urls) - len(valid))
        if not valid:
            return []
        hits = await self._fan_out("extract", lambda provider: provider.extract(valid))
        return dedupe_hits(hits)

    async def _fan_out(
        self,
        operation: str,
        call: Callable[[SearchProvider], Awaitable[list[SearchHit]]],
    ) -> list[SearchHit]:
        settled = await asyncio.gather(
            *(self._call_provider(provider, operation, call) for provider in self.providers),
            return_exceptions=True,
        )
        combined: list[SearchHit] = []
        for provider, result in zip(self.providers, settled):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Provider %s %s raised: %r", provider.name, operation, result)
                continue
            combined.extend(result)
        return combined

    async def _call_provider(
        self,
        provider: SearchProvider,
        operation: str,
        call: Callable[[SearchProvider], Awaitable[list[SearchHit]]],
    ) -> list[SearchHit]:
        name = SearchProviderName(provider.name).value
        limiter = self.limiter_for(provider)
        started = time.monotonic()
        try:
            hits = await limiter.execute(lambda: asyncio.wait_for(call(provider), self.timeout))
        except Exception as exc:
            log_provider_call(
                name,
                operation,
                status="error",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=repr(exc),
            )
            return []
        log_provider_call(
            name,
            operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            results=len(hits),
        )
        return hits


def build_providers(settings: Any) -> list[SearchProvider]:
    """Instantiate providers in ``settings.search_providers`` order.

    Raises before any I/O when a provider is unknown or lacks credentials.
    """
    factories: dict[str, Callable[[], SearchProvider]] = {
        SearchProviderName.TAVILY.value: lambda: TavilySearchProvider(
            settings.tavily_api_key,
            excerpt_length=settings.search_excerpt_length,
        ),
        SearchProviderName.EXA.value: lambda: ExaSearchProvider(
            settings.exa_api_key,
            base_url=settings.exa_base_url,
            timeout=settings.search_timeout_seconds,
            excerpt_length=settings.search_excerpt_length,
        ),
    }
    providers: list[SearchProvider] = []
    for name in settings.search_provider_list:
        factory = factories.get(name)
        if factory is None:
            raise ValueError(f"Unsupported search provider: {name}")
        providers.append(factory())
    return providers


def build_search_gateway(
    settings: Any,
    *,
    rate_limiters: Mapping[str, RateLimiter] | None = None,
) -> SearchGateway:
    return SearchGateway(
        build_providers(settings),
        rate_limiters=rate_limiters if rate_limiters is not None else build_rate_limiters(settings),
        topic_domains=settings.topic_domain_map,
        timeout=settings.search_timeout_seconds,
    )
