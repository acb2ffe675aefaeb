import asyncio
import json

import pytest

from scoutbot.agent.rag import build_search_context
from scoutbot.agent.tools.websearch import (
    AllProvidersFailed,
    SearchHit,
    SearchProviderOrchestrator,
    SearchResolution,
    WebSearchTool,
)
from scoutbot.cache.resolution import ResolutionCache
from scoutbot.config.loader import _migrate_config
from scoutbot.config.schema import DEFAULT_PROVIDER_ORDER, WebSearchConfig
from scoutbot.errors import ValidationError


def _searcher(hits=None, *, delay: float = 0.0, error: Exception | None = None, calls: list | None = None):
    async def search(*, query, count, config, api_key=""):
        if calls is not None:
            calls.append({"query": query, "count": count, "api_key": api_key})
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return list(hits or [])

    return search


def _orchestrator(searchers, **config) -> SearchProviderOrchestrator:
    cfg = WebSearchConfig(provider_order=list(searchers), **config)
    return SearchProviderOrchestrator(cfg, searchers=searchers)


@pytest.mark.asyncio
async def test_timeout_falls_back_to_next_provider() -> None:
    orchestrator = _orchestrator(
        {
            "a": _searcher([SearchHit("slow", "https://slow.example")], delay=1.0),
            "b": _searcher([SearchHit("Fast", "https://fast.example", "snippet")]),
        }
    )

    outcome = await orchestrator.resolve("query", per_provider_timeout=0.05)

    assert isinstance(outcome, SearchResolution)
    assert outcome.provider == "b"
    assert [a.provider for a in outcome.attempts] == ["a", "b"]
    assert outcome.attempts[0].outcome == "timeout"
    assert outcome.attempts[1].outcome == "success"
    assert outcome.results[0].rank == 1
    assert outcome.results[0].title == "Fast"


@pytest.mark.asyncio
async def test_timed_out_provider_call_is_cancelled() -> None:
    events: list[str] = []

    async def slow(*, query, count, config, api_key=""):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            events.append("slow cancelled")
            raise
        return [SearchHit("late", "https://late.example")]

    async def fast(*, query, count, config, api_key=""):
        events.append("fast called")
        return [SearchHit("Fast", "https://fast.example")]

    orchestrator = _orchestrator({"slow": slow, "fast": fast})

    outcome = await orchestrator.resolve("query", per_provider_timeout=0.05)

    assert outcome.provider == "fast"
    assert events == ["slow cancelled", "fast called"]


@pytest.mark.asyncio
async def test_all_failing_yields_one_attempt_per_provider_in_order() -> None:
    orchestrator = _orchestrator(
        {
            "a": _searcher(error=RuntimeError("boom")),
            "b": _searcher([]),
            "c": _searcher(delay=1.0),
        }
    )

    outcome = await orchestrator.resolve("query", per_provider_timeout=0.05)

    assert isinstance(outcome, AllProvidersFailed)
    assert [(a.provider, a.outcome) for a in outcome.attempts] == [
        ("a", "error"),
        ("b", "empty"),
        ("c", "timeout"),
    ]
    payload = outcome.to_dict()
    assert payload["ok"] is False
    assert payload["error"]["code"] == "all_providers_failed"


@pytest.mark.asyncio
async def test_results_are_deduplicated_and_ranked() -> None:
    orchestrator = _orchestrator(
        {
            "a": _searcher(
                [
                    SearchHit("One", "https://one.example"),
                    SearchHit("One again", "https://one.example"),
                    SearchHit("No url", ""),
                    SearchHit("", "https://two.example"),
                ]
            )
        }
    )

    outcome = await orchestrator.resolve("query")

    assert [(r.rank, r.title, r.url) for r in outcome.results] == [
        (1, "One", "https://one.example"),
        (2, "https://two.example", "https://two.example"),
    ]


@pytest.mark.asyncio
async def test_successful_resolution_is_cached() -> None:
    calls: list = []
    cache = ResolutionCache()
    orchestrator = SearchProviderOrchestrator(
        WebSearchConfig(provider_order=["a"]),
        cache,
        searchers={"a": _searcher([SearchHit("VivaTech", "https://vivatechnology.com")], calls=calls)},
    )

    first = await orchestrator.resolve("VivaTech")
    second = await orchestrator.resolve("vivatech")

    assert first.provider == "a"
    assert second.provider == "cache"
    assert second.results[0].url == "https://vivatechnology.com"
    assert second.results[0].title == "VivaTech"
    assert len(calls) == 1
    assert cache.get("search:vivatech").value == "https://vivatechnology.com"


@pytest.mark.asyncio
async def test_api_key_lookup_and_redaction(monkeypatch) -> None:
    calls: list = []
    monkeypatch.setenv("SERPAPI_API_KEY", "env-serp-key-123")
    orchestrator = SearchProviderOrchestrator(
        WebSearchConfig(provider_order=["serpapi"]),
        searchers={"serpapi": _searcher(error=RuntimeError("GET /search?api_key=env-serp-key-123 failed"), calls=calls)},
    )

    outcome = await orchestrator.resolve("q")

    assert calls[0]["api_key"] == "env-serp-key-123"
    assert "env-serp-key-123" not in outcome.attempts[0].reason

    await orchestrator.resolve("q", api_keys={"serpapi": "request-key-456"})
    assert calls[1]["api_key"] == "request-key-456"


@pytest.mark.asyncio
async def test_empty_query_is_rejected() -> None:
    orchestrator = _orchestrator({"a": _searcher([])})
    with pytest.raises(ValidationError):
        await orchestrator.resolve("   ")


def test_order_for_puts_known_provider_first() -> None:
    orchestrator = SearchProviderOrchestrator(WebSearchConfig())
    assert orchestrator.order_for("serpapi") == ["serpapi", "searxng", "fetch-fallback"]
    assert orchestrator.order_for("bing") == ["searxng", "serpapi", "fetch-fallback"]
    assert orchestrator.order_for(None) == ["searxng", "serpapi", "fetch-fallback"]


def test_empty_configured_order_uses_default_chain() -> None:
    orchestrator = SearchProviderOrchestrator(WebSearchConfig(provider_order=[]))
    assert orchestrator.default_order() == DEFAULT_PROVIDER_ORDER

    migrated = _migrate_config({"tools": {"web": {"search": {"provider": "fetch-fallback"}}}})
    assert migrated["tools"]["web"]["search"]["providerOrder"] == ["fetch-fallback", "searxng", "serpapi"]


@pytest.mark.asyncio
async def test_web_search_tool_json_contract() -> None:
    orchestrator = _orchestrator(
        {
            "a": _searcher(error=RuntimeError("down")),
            "b": _searcher([SearchHit("Result", "https://r.example", "text")]),
        }
    )
    tool = WebSearchTool(orchestrator=orchestrator)

    payload = json.loads(await tool.execute(query="q", provider="b", count=3))
    assert payload["ok"] is True
    assert payload["provider"] == "b"
    assert [a["provider"] for a in payload["attempts"]] == ["b"]
    assert payload["results"][0] == {"title": "Result", "url": "https://r.example", "snippet": "text", "rank": 1}

    failed = json.loads(await tool.execute(query="   "))
    assert failed["ok"] is False
    assert failed["error"]["code"] == "invalid_input"
    assert failed["attempts"] == []


@pytest.mark.asyncio
async def test_rag_context_formats_numbered_blocks() -> None:
    orchestrator = _orchestrator(
        {
            "a": _searcher(
                [
                    SearchHit("First", "https://1.example", "alpha"),
                    SearchHit("Second", "https://2.example", ""),
                ]
            )
        }
    )

    ctx = await build_search_context(orchestrator, "q")
    assert ctx.ok
    assert ctx.provider == "a"
    assert ctx.context == "[1] First: alpha\n\n[2] Second"
    assert [s.url for s in ctx.sources] == ["https://1.example", "https://2.example"]


@pytest.mark.asyncio
async def test_rag_context_reports_failures_without_raising() -> None:
    orchestrator = _orchestrator({"a": _searcher([])})

    ctx = await build_search_context(orchestrator, "q")
    assert not ctx.ok
    assert "All search providers failed" in ctx.error
    assert ctx.context == ""

    empty = await build_search_context(orchestrator, "")
    assert empty.error
