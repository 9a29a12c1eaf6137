from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence, Union

import httpx

from webevidence.research_core.extract.service import ExtractService
from webevidence.research_core.models.interfaces import Evidence, HarvestOptions, SearchHit
from webevidence.research_core.scrape.robots import RobotsChecker
from webevidence.services.logger import log_event, logger
from webevidence.services.rate_limiter import RateLimiter
from webevidence.tools import web_utils

HarvestTarget = Union[SearchHit, str]

ACCEPTED_CONTENT_TYPES = ("text/html", "text/plain", "application/xhtml+xml")


@dataclass(slots=True)
class FetchResult:
    body: str
    final_url: str
    status_code: int
    content_type: str


class HarvestRejected(Exception):
    """A page that yields no usable evidence (policy or fetch failure)."""


def _is_redirect(status_code: int) -> bool:
    return 300 <= status_code <= 399


class HarvestService:
    """Fetches pages directly and turns them into Evidence.

    ``harvest`` never raises: every failure is logged and becomes ``None``.
    """

    def __init__(
        self,
        options: HarvestOptions | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.options = options or HarvestOptions()
        self._rate_limiter = rate_limiter
        self._client = http_client
        self._owns_client = http_client is None
        self._robots: RobotsChecker | None = None
        self._extractor = ExtractService(self.options)

    async def __aenter__(self) -> HarvestService:
        self._ensure_client()
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._robots = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Redirects are followed by hand so the resolved URL is known.
            self._client = httpx.AsyncClient(
                timeout=self.options.timeout,
                follow_redirects=False,
            )
        if self._robots is None:
            self._robots = RobotsChecker(
                self._client,
                user_agent=self.options.user_agent,
                timeout=self.options.robots_timeout,
                rate_limiter=self._rate_limiter,
            )
        return self._client

    async def harvest(self, target: HarvestTarget) -> Evidence | None:
        url = target.url if isinstance(target, SearchHit) else str(target)
        try:
            return await self._harvest(target, url)
        except HarvestRejected as exc:
            log_event("harvest_skipped", str(exc), level=logging.DEBUG, url=url)
        except Exception as exc:
            log_event("harvest_failed", "page fetch failed", level=logging.WARNING, url=url, error=repr(exc))
        return None

    async def harvest_results(self, targets: Sequence[HarvestTarget]) -> list[Evidence]:
        """Harvest in parallel; output keeps input order minus failures."""
        if not targets:
            return []
        self._ensure_client()
        harvested = await asyncio.gather(
            *(self.harvest(target) for target in targets),
            return_exceptions=True,
        )

        evidence: list[Evidence] = []
        for target, item in zip(targets, harvested):
            if isinstance(item, BaseException):
                if isinstance(item, asyncio.CancelledError):
                    raise item
                logger.warning("Harvest of %s raised unexpectedly: %r", target, item)
                continue
            if item is not None:
                evidence.append(item)

        logger.info(
            "Harvested %d/%d pages (%d chunks)",
            len(evidence),
            len(targets),
            sum(len(ev.chunks) for ev in evidence),
        )
        return evidence

    async def _harvest(self, target: HarvestTarget, url: str) -> Evidence | None:
        if not web_utils.is_valid_url(url):
            raise HarvestRejected("invalid url")

        self._ensure_client()
        if self.options.respect_robots_txt and not await self._robots.is_allowed(url):
            raise HarvestRejected("disallowed by robots.txt")

        fetched = await self.fetch(url)
        if fetched.content_type not in ACCEPTED_CONTENT_TYPES:
            raise HarvestRejected(f"unsupported content type {fetched.content_type!r}")

        hit = target if isinstance(target, SearchHit) else None
        extract_kwargs = dict(
            url=url,
            body=fetched.body,
            final_url=fetched.final_url,
            title=hit.title if hit else "",
            snippet=(hit.excerpt or None) if hit else None,
            provider=hit.provider if hit else None,
            published_at=hit.published_at if hit else None,
        )
        if self.options.extract_in_thread:
            evidence = await asyncio.to_thread(self._extractor.extract, **extract_kwargs)
        else:
            evidence = self._extractor.extract(**extract_kwargs)
        if evidence is None:
            raise HarvestRejected("content below minimum length")
        return evidence

    async def fetch(self, url: str) -> FetchResult:
        """GET ``url``, following up to ``max_redirects`` hops by hand."""
        client = self._ensure_client()
        current = url
        visited = {current}

        for _hop in range(self.options.max_redirects + 1):
            response = await self._get(client, current)
            if not _is_redirect(response.status_code):
                if not response.is_success:
                    raise HarvestRejected(f"http status {response.status_code}")
                content_type = response.headers.get("content-type", "").split(";", 1)[0]
                return FetchResult(
                    body=response.text,
                    final_url=current,
                    status_code=response.status_code,
                    content_type=content_type.strip().lower(),
                )

            location = response.headers.get("location")
            if not location:
                raise HarvestRejected(f"redirect {response.status_code} without location")
            next_url = web_utils.resolve_url(current, location)
            if not web_utils.is_valid_url(next_url):
                raise HarvestRejected(f"redirect to unsupported url {next_url!r}")
            if next_url in visited:
                raise HarvestRejected("redirect cycle")
            visited.add(next_url)
            current = next_url

        raise HarvestRejected(f"more than {self.options.max_redirects} redirects")

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()
        return await asyncio.wait_for(
            client.get(
                url,
                headers={"User-Agent": self.options.user_agent},
                timeout=self.options.timeout,
                follow_redirects=False,
            ),
            timeout=self.options.timeout,
        )


async def harvest(
    target: HarvestTarget,
    options: HarvestOptions | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Evidence | None:
    async with HarvestService(options, rate_limiter=rate_limiter, http_client=http_client) as service:
        return await service.harvest(target)


async def harvest_results(
    targets: Sequence[HarvestTarget],
    options: HarvestOptions | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> list[Evidence]:
    async with HarvestService(options, rate_limiter=rate_limiter, http_client=http_client) as service:
        return await service.harvest_results(targets)
