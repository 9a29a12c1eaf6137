from __future__ import annotations

import dataclasses

import pytest

from webevidence.research_core.models.interfaces import (
    HarvestOptions,
    RerankOptions,
    SearchHit,
    SearchProviderName,
)
from webevidence.tools import web_utils


def make_hit(url: str = "https://News.Example.com/story?id=3", **kwargs) -> SearchHit:
    return SearchHit(provider=SearchProviderName.EXA, query="q", url=url, **kwargs)


@pytest.mark.parametrize("url", ["", "example.com/story", "ftp://example.com/a", "mailto:a@example.com"])
def test_search_hit_requires_absolute_http_url(url):
    with pytest.raises(ValueError):
        make_hit(url)


def test_search_hit_derives_hostname_and_id():
    hit = make_hit()
    assert hit.hostname == "news.example.com"
    assert hit.id == web_utils.short_hash("https://News.Example.com/story?id=3")
    assert hit.fetched_at.tzinfo is not None


def test_search_hit_is_immutable_and_with_score_copies():
    hit = make_hit(provider_score=0.4)
    scored = hit.with_score(1.7)

    assert scored.score == 1.7
    assert hit.score is None
    assert scored.provider_score == 0.4
    with pytest.raises(dataclasses.FrozenInstanceError):
        hit.title = "changed"


def test_raw_record_is_ignored_for_equality():
    a = make_hit(raw={"a": 1})
    b = dataclasses.replace(a, raw={"b": 2})
    assert a == b


def test_provider_name_is_a_string_enum():
    assert SearchProviderName("tavily") is SearchProviderName.TAVILY
    assert SearchProviderName.EXA == "exa"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_chunk_size": 0},
        {"max_chunk_size": 100, "chunk_overlap": 100},
        {"chunk_overlap": -1},
        {"max_redirects": -1},
    ],
)
def test_harvest_options_reject_bad_values(kwargs):
    with pytest.raises(ValueError):
        HarvestOptions(**kwargs)


def test_option_defaults():
    harvest = HarvestOptions()
    assert (harvest.timeout, harvest.robots_timeout) == (10.0, 5.0)
    assert (harvest.max_chunk_size, harvest.chunk_overlap, harvest.min_content_length) == (1000, 100, 100)
    assert harvest.user_agent == "ResearchAssistant/1.0 (Educational)"

    rerank = RerankOptions()
    assert rerank.authority_boost == 0.3
    assert rerank.recency_boost == 0.2
    assert "wikipedia.org" in rerank.authoritative_domains
