from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from webevidence.research_core.models.interfaces import (
    Chunk,
    Evidence,
    HarvestOptions,
    SearchProviderName,
)
from webevidence.tools import web_utils

SNIPPET_LENGTH = 500

SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^<>]*>")
WHITESPACE_RE = re.compile(r"\s+")

# Only the five standard entities plus &nbsp; are decoded; &amp; goes last so
# "&amp;lt;" becomes the literal text "&lt;".
HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

PUBLISHED_META_KEYS = (
    ("property", "article:published_time"),
    ("property", "og:published_time"),
    ("itemprop", "datePublished"),
    ("name", "date"),
    ("name", "pubdate"),
    ("name", "dc.date"),
)


def clean_html_text(html: str) -> str:
    """Strip scripts, styles and tags; decode basic entities; collapse whitespace."""
    text = SCRIPT_RE.sub(" ", html)
    text = STYLE_RE.sub(" ", text)
    text = TAG_RE.sub(" ", text)
    for entity, replacement in HTML_ENTITIES:
        text = text.replace(entity, replacement)
    return WHITESPACE_RE.sub(" ", text).strip()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the cleaned text. Depends on nothing else."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def chunk_text(text: str, *, max_chunk_size: int = 1000, overlap: int = 100) -> list[Chunk]:
    """Split text into fixed-size windows; neighbours share ``overlap`` chars."""
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if not 0 <= overlap < max_chunk_size:
        raise ValueError("overlap must be >= 0 and smaller than max_chunk_size")
    if not text:
        return []

    step = max_chunk_size - overlap
    chunks: list[Chunk] = []
    start = 0
    while True:
        chunks.append(Chunk(content=text[start : start + max_chunk_size], chunk_index=len(chunks)))
        if start + max_chunk_size >= len(text):
            break
        start += step
    return chunks


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return WHITESPACE_RE.sub(" ", soup.title.string).strip()
    return ""


def extract_canonical_url(soup: BeautifulSoup, base_url: str) -> str | None:
    link = soup.find("link", rel="canonical", href=True)
    if link is None:
        return None
    href = str(link.get("href") or "").strip()
    if not href:
        return None
    canonical = web_utils.resolve_url(base_url, href)
    return canonical if web_utils.is_valid_url(canonical) else None


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime; naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_published_at(soup: BeautifulSoup) -> datetime | None:
    for attr, key in PUBLISHED_META_KEYS:
        meta = soup.find("meta", attrs={attr: re.compile(f"^{re.escape(key)}$", re.IGNORECASE)})
        if meta is None:
            continue
        parsed = parse_datetime(meta.get("content"))
        if parsed is not None:
            return parsed
    return None


def build_evidence(
    *,
    url: str,
    text: str,
    options: HarvestOptions,
    title: str = "",
    snippet: str | None = None,
    provider: SearchProviderName | None = None,
    resolved_url: str | None = None,
    canonical_url: str | None = None,
    published_at: datetime | None = None,
) -> Evidence | None:
    """Hash and chunk cleaned text; ``None`` when it is too short to be useful."""
    if len(text) < options.min_content_length:
        return None
    return Evidence(
        url=url,
        title=title,
        snippet=snippet if snippet is not None else text[:SNIPPET_LENGTH],
        content_hash=content_hash(text),
        chunks=tuple(
            chunk_text(text, max_chunk_size=options.max_chunk_size, overlap=options.chunk_overlap)
        ),
        provider=provider,
        resolved_url=resolved_url,
        canonical_url=canonical_url,
        published_at=published_at,
    )


class ExtractService:
    """Turns a fetched HTML or plain-text body into Evidence."""

    def __init__(self, options: HarvestOptions | None = None):
        self.options = options or HarvestOptions()

    def extract(
        self,
        *,
        url: str,
        body: str,
        final_url: str,
        title: str = "",
        snippet: str | None = None,
        provider: SearchProviderName | None = None,
        published_at: datetime | None = None,
    ) -> Evidence | None:
        text = clean_html_text(body)
        if len(text) < self.options.min_content_length:
            return None

        soup = _soup(body)
        return build_evidence(
            url=url,
            text=text,
            options=self.options,
            title=title or extract_title(soup) or url,
            snippet=snippet,
            provider=provider,
            resolved_url=final_url,
            canonical_url=extract_canonical_url(soup, final_url),
            published_at=extract_published_at(soup) or published_at,
        )
