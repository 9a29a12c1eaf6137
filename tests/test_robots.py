from __future__ import annotations

import httpx
import pytest

from webevidence.research_core.scrape.robots import RobotsChecker, parse_robots_txt

UA = "ResearchAssistant/1.0 (Educational)"


def test_disallow_prefix_for_wildcard_agent():
    rules = parse_robots_txt("User-agent: *\nDisallow: /private\n")
    assert not rules.is_allowed("https://example.com/private/page", UA)
    assert not rules.is_allowed("https://example.com/private", UA)
    assert rules.is_allowed("https://example.com/public/private", UA)


def test_disallow_root_blocks_everything():
    rules = parse_robots_txt("User-agent: *\nDisallow: /")
    assert not rules.is_allowed("https://example.com/", UA)
    assert not rules.is_allowed("https://example.com/anything", UA)


def test_empty_disallow_allows_everything():
    rules = parse_robots_txt("User-agent: *\nDisallow:\n")
    assert rules.is_allowed("https://example.com/anything", UA)


def test_rules_for_other_agents_are_ignored():
    rules = parse_robots_txt("User-agent: SomeOtherBot\nDisallow: /\n\nUser-agent: *\nDisallow: /tmp\n")
    assert rules.is_allowed("https://example.com/docs", UA)
    assert not rules.is_allowed("https://example.com/tmp/x", UA)


def test_exact_user_agent_match_and_grouped_agents():
    text = "\n".join(
        [
            "# crawler policy",
            "User-agent: Googlebot",
            f"user-agent: {UA}",
            "Disallow: /drafts  # unpublished",
            "Allow: /drafts/public",
        ]
    )
    rules = parse_robots_txt(text)
    assert not rules.is_allowed("https://example.com/drafts/one", UA)
    assert not rules.is_allowed("https://example.com/drafts/one", "googlebot")
    assert rules.is_allowed("https://example.com/drafts/one", "OtherBot")


def test_query_string_is_part_of_the_match():
    rules = parse_robots_txt("User-agent: *\nDisallow: /search?q=")
    assert not rules.is_allowed("https://example.com/search?q=cats", UA)
    assert rules.is_allowed("https://example.com/search", UA)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_checker_fetches_once_per_origin():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, text="User-agent: *\nDisallow: /private")

    async with _client(handler) as client:
        checker = RobotsChecker(client, user_agent=UA)
        assert await checker.is_allowed("https://example.com/a")
        assert not await checker.is_allowed("https://example.com/private/b")
        assert await checker.is_allowed("https://other.example.org/private/b")

    assert calls == ["https://example.com/robots.txt", "https://other.example.org/robots.txt"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "respond",
    [
        lambda request: httpx.Response(404, text="not found"),
        lambda request: httpx.Response(500, text="User-agent: *\nDisallow: /"),
    ],
)
async def test_checker_fails_open_on_http_errors(respond):
    async with _client(respond) as client:
        checker = RobotsChecker(client, user_agent=UA)
        assert await checker.is_allowed("https://example.com/private")


@pytest.mark.asyncio
async def test_checker_fails_open_on_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        checker = RobotsChecker(client, user_agent=UA)
        assert await checker.is_allowed("https://example.com/private")
