"""SerpAPI (Google engine) adapter."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import httpx

from scoutbot.agent.tools.websearch.models import SearchHit, WebSearchError

if TYPE_CHECKING:
    from scoutbot.config.schema import SerpApiProviderConfig

_WHITESPACE_RE = re.compile(r"\s+")


def clean_api_key(raw: str) -> str:
    """Keys pasted from dashboards often carry newlines or stray spaces."""
    return _WHITESPACE_RE.sub("", raw or "")


async def search_serpapi(
    *,
    query: str,
    count: int,
    config: "SerpApiProviderConfig",
    api_key: str = "",
) -> list[SearchHit]:
    """Search with SerpAPI and normalize ``organic_results``."""
    key = clean_api_key(api_key)
    if not key:
        raise WebSearchError(
            "serpapi api key not configured "
            "(pass apiKeys.serpapi, set tools.web.search.providers.serpapi.apiKey or SERPAPI_API_KEY)"
        )

    async with httpx.AsyncClient() as client:
        response = await client.get(
            config.base_url,
            params={
                "q": query,
                "api_key": key,
                "engine": config.engine,
                "gl": config.country,
                "hl": config.language,
                "num": min(count, 10),
            },
            headers={"Accept": "application/json"},
            timeout=25.0,
        )
        response.raise_for_status()

    return decode_organic_results(response.json(), count)


def decode_organic_results(payload: dict, count: int) -> list[SearchHit]:
    if payload.get("error"):
        raise WebSearchError(f"serpapi error: {payload['error']}")
    results = payload.get("organic_results") or []
    return [
        SearchHit(
            title=item.get("title", ""),
            url=item.get("link", ""),
            snippet=item.get("snippet", ""),
        )
        for item in results[:count]
    ]
