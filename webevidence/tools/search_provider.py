from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from webevidence.research_core.models.interfaces import SearchHit, SearchMode, SearchProviderName
from webevidence.services.logger import logger


@runtime_checkable
class SearchProvider(Protocol):
    """What the gateway needs from an external search API."""

    name: SearchProviderName
    default_requests_per_second: float

    async def search(
        self,
        query: str,
        *,
        max_results: int,
        include_domains: Sequence[str] = (),
        exclude_domains: Sequence[str] = (),
        mode: SearchMode = "discovery",
    ) -> list[SearchHit]: ...

    async def extract(self, urls: Sequence[str]) -> list[SearchHit]: ...


def build_hits(records, make_hit) -> list[SearchHit]:
    """Map raw provider records to hits, skipping ones with unusable URLs."""
    hits: list[SearchHit] = []
    for record in records:
        try:
            hits.append(make_hit(record))
        except ValueError as exc:
            logger.debug("Skipping provider record: %s", exc)
    return hits
