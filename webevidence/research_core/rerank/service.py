from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence

from webevidence.research_core.models.interfaces import Evidence, RerankOptions
from webevidence.tools import web_utils

BASE_SCORE = 1.0
CONTENT_QUALITY_INCREMENT = 0.1
CONTENT_QUALITY_SMALL_INCREMENT = 0.05


def dedup_key(evidence: Evidence) -> str:
    """Post-fetch identity: content hash plus normalized URL.

    Both parts must match, so mirrors serving identical text at different
    URLs are kept as separate items.
    """
    return f"{evidence.content_hash}:{web_utils.normalize_url(evidence.url)}"


def dedupe_evidence(evidence: Iterable[Evidence]) -> list[Evidence]:
    seen: set[str] = set()
    unique: list[Evidence] = []
    for item in evidence:
        key = dedup_key(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def is_authoritative(hostname: str, authoritative_domains: Sequence[str]) -> bool:
    host = hostname.lower()
    if not host:
        return False
    for domain in authoritative_domains:
        domain = domain.lower()
        if host == domain or host.endswith(f".{domain}") or domain in host:
            return True
    return False


def content_quality_score(evidence: Evidence, options: RerankOptions) -> float:
    score = 0.0
    first, second = options.chunk_count_thresholds
    chunk_count = len(evidence.chunks)
    if chunk_count > first:
        score += CONTENT_QUALITY_INCREMENT
    if chunk_count > second:
        score += CONTENT_QUALITY_INCREMENT
    if len(evidence.title) > options.min_title_length:
        score += CONTENT_QUALITY_SMALL_INCREMENT
    if evidence.snippet and len(evidence.snippet) > options.min_snippet_length:
        score += CONTENT_QUALITY_SMALL_INCREMENT
    return score


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def recency_score(evidence: Evidence, options: RerankOptions) -> float:
    """Linear decay over the recency window; zero when the date is unknown."""
    if evidence.published_at is None or options.recency_window_days <= 0:
        return 0.0
    now = _as_utc(options.now or datetime.now(timezone.utc))
    age_days = (now - _as_utc(evidence.published_at)).total_seconds() / 86400
    age_days = max(age_days, 0.0)
    return options.recency_boost * max(0.0, 1.0 - age_days / options.recency_window_days)


def score_evidence(evidence: Evidence, options: RerankOptions | None = None) -> float:
    options = options or RerankOptions()
    score = BASE_SCORE
    if is_authoritative(evidence.hostname, options.authoritative_domains):
        score += options.authority_boost
    score += recency_score(evidence, options)
    score += content_quality_score(evidence, options)
    return score


def dedup_and_rerank(
    evidence: Sequence[Evidence],
    options: RerankOptions | None = None,
) -> list[Evidence]:
    """Drop duplicates (first wins), then order by score, highest first.

    ``sorted`` is stable, so equal scores keep their input order. No I/O.
    """
    options = options or RerankOptions()
    unique = dedupe_evidence(evidence)
    scored = [(score_evidence(item, options), item) for item in unique]
    ranked = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [item for _score, item in ranked]
