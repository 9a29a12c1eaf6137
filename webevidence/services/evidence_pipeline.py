from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from webevidence.research_core.extract.service import build_evidence, clean_html_text
from webevidence.research_core.models.interfaces import (
    Evidence,
    HarvestOptions,
    RerankOptions,
    SearchHit,
)
from webevidence.research_core.rerank.service import dedup_and_rerank
from webevidence.research_core.scrape.service import HarvestService
from webevidence.services.logger import log_event, logger
from webevidence.services.rate_limiter import RateLimiter, build_rate_limiters
from webevidence.services.search_gateway import SearchGateway, build_search_gateway, dedupe_hits
from webevidence.tools import web_utils


@dataclass(slots=True)
class PipelineResult:
    queries: list[str] = field(default_factory=list)
    hits: list[SearchHit] = field(default_factory=list)
    harvested: list[Evidence] = field(default_factory=list)
    enriched: list[Evidence] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)


class EvidencePipeline:
    """discovery -> harvest -> (enrich fallback) -> dedup/rerank."""

    def __init__(
        self,
        gateway: SearchGateway,
        *,
        harvest_options: HarvestOptions | None = None,
        harvest_rate_limiter: RateLimiter | None = None,
        rerank_options: RerankOptions | None = None,
        max_evidence: int | None = 50,
        enrich_fallback: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.gateway = gateway
        self.harvest_options = harvest_options or HarvestOptions()
        self.harvest_rate_limiter = harvest_rate_limiter
        self.rerank_options = rerank_options or RerankOptions()
        self.max_evidence = max_evidence
        self.enrich_fallback = enrich_fallback
        self._http_client = http_client

    async def run(
        self,
        queries: str | Sequence[str],
        *,
        max_results_per_query: int = 10,
        include_domains: Sequence[str] | None = None,
        exclude_domains: Sequence[str] | None = None,
    ) -> PipelineResult:
        if isinstance(queries, str):
            queries = [queries]
        cleaned = [q.strip() for q in queries if q and q.strip()]
        result = PipelineResult(queries=cleaned)
        if not cleaned:
            return result

        result.hits = await self.search(
            cleaned,
            max_results_per_query=max_results_per_query,
            include_domains=include_domains,
            exclude_domains=exclude_domains,
        )
        if not result.hits:
            log_event("pipeline_no_hits", "discovery returned no hits", queries=cleaned)
            return result

        async with HarvestService(
            self.harvest_options,
            rate_limiter=self.harvest_rate_limiter,
            http_client=self._http_client,
        ) as harvester:
            result.harvested = await harvester.harvest_results(result.hits)

        if self.enrich_fallback:
            result.enriched = await self.enrich_missing(result.hits, result.harvested)

        ranked = dedup_and_rerank(result.harvested + result.enriched, self.rerank_options)
        result.evidence = ranked[: self.max_evidence] if self.max_evidence else ranked
        logger.info(
            "Pipeline: %d hits, %d harvested, %d enriched, %d evidence",
            len(result.hits),
            len(result.harvested),
            len(result.enriched),
            len(result.evidence),
        )
        return result

    async def search(
        self,
        queries: Sequence[str],
        *,
        max_results_per_query: int,
        include_domains: Sequence[str] | None,
        exclude_domains: Sequence[str] | None,
    ) -> list[SearchHit]:
        """Run discovery per query in parallel; merge in query order."""
        settled = await asyncio.gather(
            *(
                self.gateway.search_all(
                    query,
                    max_results=max_results_per_query,
                    include_domains=include_domains,
                    exclude_domains=exclude_domains,
                )
                for query in queries
            ),
            return_exceptions=True,
        )
        merged: list[SearchHit] = []
        for query, item in zip(queries, settled):
            if isinstance(item, asyncio.CancelledError):
                raise item
            if isinstance(item, BaseException):
                logger.error("Discovery for %r failed: %r", query, item)
                continue
            merged.extend(item)
        return dedupe_hits(merged)

    async def enrich_missing(
        self,
        hits: Sequence[SearchHit],
        harvested: Sequence[Evidence],
    ) -> list[Evidence]:
        """Fetch provider-side content for hits the harvester could not use."""
        done = {web_utils.dedupe_key_for_url(ev.url) for ev in harvested}
        missing = {
            web_utils.dedupe_key_for_url(hit.url): hit
            for hit in hits
            if web_utils.dedupe_key_for_url(hit.url) not in done
        }
        if not missing:
            return []

        enriched_hits = await self.gateway.search_all(
            mode="enrich",
            urls=[hit.url for hit in missing.values()],
        )
        evidence: list[Evidence] = []
        for enriched in enriched_hits:
            if not enriched.content:
                continue
            hit = missing.get(web_utils.dedupe_key_for_url(enriched.url))
            item = build_evidence(
                url=hit.url if hit else enriched.url,
                text=clean_html_text(enriched.content),
                options=self.harvest_options,
                title=(hit.title if hit else "") or enriched.title or enriched.url,
                snippet=(hit.excerpt if hit else enriched.excerpt) or None,
                provider=enriched.provider,
                published_at=enriched.published_at or (hit.published_at if hit else None),
            )
            if item is not None:
                evidence.append(item)
        return evidence


def build_evidence_pipeline(settings: Any, *, enrich_fallback: bool = False) -> EvidencePipeline:
    limiters = build_rate_limiters(settings)
    return EvidencePipeline(
        build_search_gateway(settings, rate_limiters=limiters),
        harvest_options=HarvestOptions.from_settings(settings),
        harvest_rate_limiter=limiters["harvest"],
        rerank_options=RerankOptions.from_settings(settings),
        max_evidence=settings.max_evidence,
        enrich_fallback=enrich_fallback,
    )
