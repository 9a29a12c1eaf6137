from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from webevidence.services.logger import log_event
from webevidence.services.rate_limiter import RateLimiter
from webevidence.tools import web_utils


@dataclass(slots=True)
class RobotsRules:
    """Disallow prefixes per user-agent token (lower-cased)."""

    disallow: dict[str, list[str]] = field(default_factory=dict)

    def is_allowed(self, url: str, user_agent: str) -> bool:
        parsed = urlsplit(url)
        target = parsed.path or "/"
        if parsed.query:
            target = f"{target}?{parsed.query}"

        agent = user_agent.strip().lower()
        for token in ("*", agent):
            for prefix in self.disallow.get(token, []):
                if prefix == "/" or target.startswith(prefix):
                    return False
        return True


def parse_robots_txt(text: str) -> RobotsRules:
    """Minimal parser: only ``User-agent`` and ``Disallow`` lines are read.

    Consecutive ``User-agent`` lines share the rules that follow them. An
    empty ``Disallow`` allows everything and is skipped.
    """
    rules = RobotsRules()
    group: list[str] = []
    in_agent_block = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if not in_agent_block:
                group = []
            group.append(value.lower())
            in_agent_block = True
            continue

        in_agent_block = False
        if directive == "disallow" and value:
            for agent in group:
                rules.disallow.setdefault(agent, []).append(value)

    return rules


class RobotsChecker:
    """Fetches robots.txt once per origin and answers allow/deny.

    Any fetch or parse failure allows the crawl.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        timeout: float = 5.0,
        rate_limiter: RateLimiter | None = None,
    ):
        self._client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self._rate_limiter = rate_limiter
        self._cache: dict[str, RobotsRules | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def is_allowed(self, url: str) -> bool:
        robots_url = web_utils.robots_txt_url(url)
        if robots_url is None:
            return True

        lock = self._locks.setdefault(robots_url, asyncio.Lock())
        async with lock:
            if robots_url not in self._cache:
                self._cache[robots_url] = await self._load(robots_url)
        rules = self._cache[robots_url]
        if rules is None:
            return True
        return rules.is_allowed(url, self.user_agent)

    async def _load(self, robots_url: str) -> RobotsRules | None:
        try:
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire()
            response = await asyncio.wait_for(
                self._client.get(
                    robots_url,
                    headers={"User-Agent": self.user_agent},
                    timeout=self.timeout,
                    follow_redirects=True,
                ),
                timeout=self.timeout,
            )
            if not response.is_success:
                return None
            return parse_robots_txt(response.text)
        except Exception as exc:
            log_event(
                "robots_txt_unavailable",
                "robots.txt fetch failed; allowing crawl",
                level=logging.DEBUG,
                robots_url=robots_url,
                error=repr(exc),
            )
            return None
