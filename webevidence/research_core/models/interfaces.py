from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from webevidence.tools import web_utils

SearchMode = Literal["discovery", "enrich"]

# Provider records are kept as decoded JSON for diagnostics only.
RawRecord = dict[str, Any]


class SearchProviderName(str, Enum):
    TAVILY = "tavily"
    EXA = "exa"


@dataclass(frozen=True, slots=True)
class SearchHit:
    """Provider-native search result, normalized to one shape."""

    provider: SearchProviderName
    query: str
    url: str
    title: str = ""
    excerpt: str = ""
    content: str | None = None
    published_at: datetime | None = None
    provider_score: float | None = None
    score: float | None = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: RawRecord = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not web_utils.is_valid_url(self.url):
            raise ValueError(f"SearchHit url must be an absolute http(s) URL: {self.url!r}")

    @property
    def hostname(self) -> str:
        return web_utils.extract_hostname(self.url)

    @property
    def id(self) -> str:
        return web_utils.short_hash(self.url)

    def with_score(self, score: float) -> SearchHit:
        return replace(self, score=score)


@dataclass(frozen=True, slots=True)
class Chunk:
    content: str
    chunk_index: int


@dataclass(frozen=True, slots=True)
class Evidence:
    """One harvested page: cleaned, hashed and chunked."""

    url: str
    title: str
    snippet: str
    content_hash: str
    chunks: tuple[Chunk, ...]
    provider: SearchProviderName | None = None
    resolved_url: str | None = None
    canonical_url: str | None = None
    published_at: datetime | None = None

    @property
    def hostname(self) -> str:
        return web_utils.extract_hostname(self.url)


@dataclass(frozen=True, slots=True)
class HarvestOptions:
    timeout: float = 10.0
    robots_timeout: float = 5.0
    respect_robots_txt: bool = True
    user_agent: str = "ResearchAssistant/1.0 (Educational)"
    min_content_length: int = 100
    max_chunk_size: int = 1000
    chunk_overlap: int = 100
    max_redirects: int = 5
    extract_in_thread: bool = True

    def __post_init__(self) -> None:
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.max_chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than max_chunk_size")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be >= 0")

    @classmethod
    def from_settings(cls, settings: Any) -> HarvestOptions:
        return cls(
            timeout=settings.harvest_timeout_seconds,
            robots_timeout=settings.robots_txt_timeout_seconds,
            respect_robots_txt=settings.respect_robots_txt,
            user_agent=settings.harvest_user_agent,
            min_content_length=settings.min_content_length,
            max_chunk_size=settings.max_chunk_size,
            chunk_overlap=settings.chunk_overlap,
            max_redirects=settings.harvest_max_redirects,
            extract_in_thread=settings.extract_in_thread,
        )


DEFAULT_AUTHORITATIVE_DOMAINS = (
    "wikipedia.org",
    "github.com",
    "arxiv.org",
    "scholar.google.com",
    ".edu",
    ".gov",
)


@dataclass(frozen=True, slots=True)
class RerankOptions:
    authority_boost: float = 0.3
    recency_boost: float = 0.2
    recency_window_days: int = 1095
    authoritative_domains: tuple[str, ...] = DEFAULT_AUTHORITATIVE_DOMAINS
    chunk_count_thresholds: tuple[int, int] = (5, 10)
    min_title_length: int = 50
    min_snippet_length: int = 100
    now: datetime | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> RerankOptions:
        return cls(
            authority_boost=settings.authority_boost,
            recency_boost=settings.recency_boost,
            recency_window_days=settings.recency_window_days,
            authoritative_domains=tuple(settings.authoritative_domain_list),
        )
