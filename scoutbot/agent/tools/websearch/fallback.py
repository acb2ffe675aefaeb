"""Keyless fallback search: DuckDuckGo Instant Answer plus Wikipedia opensearch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote_plus

import httpx
from loguru import logger

from scoutbot.agent.tools.websearch.models import SearchHit, WebSearchError

if TYPE_CHECKING:
    from scoutbot.config.schema import FetchFallbackProviderConfig

_HEADERS = {"Accept": "application/json", "User-Agent": "scoutbot/0.1 (+fetch-fallback)"}


async def search_fetch_fallback(
    *,
    query: str,
    count: int,
    config: "FetchFallbackProviderConfig",
    api_key: str = "",
) -> list[SearchHit]:
    """Instant answers first; Wikipedia tops up when fewer than three hits came back."""
    hits: list[SearchHit] = []
    failures: list[str] = []
    attempted = 1

    async with httpx.AsyncClient() as client:
        try:
            hits.extend(await _duckduckgo(client, query, config.duckduckgo_url))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("DuckDuckGo instant answer failed: {}", e)
            failures.append(f"duckduckgo: {e}")

        if len(hits) < 3:
            for lang in config.wikipedia_languages:
                attempted += 1
                try:
                    hits.extend(await _wikipedia(client, query, lang, config.wikipedia_limit))
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Wikipedia ({}) opensearch failed: {}", lang, e)
                    failures.append(f"wikipedia-{lang}: {e}")

    # Every source erroring is a provider error; answers with no hits are just empty.
    if not hits and len(failures) == attempted:
        raise WebSearchError("; ".join(failures))
    return hits[:count]


async def _duckduckgo(client: Any, query: str, base_url: str) -> list[SearchHit]:
    response = await client.get(
        base_url,
        params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
        headers=_HEADERS,
        timeout=10.0,
    )
    response.raise_for_status()
    return decode_instant_answer(response.json(), query)


def decode_instant_answer(data: dict[str, Any], query: str) -> list[SearchHit]:
    hits: list[SearchHit] = []

    abstract = str(data.get("AbstractText") or "").strip()
    if abstract:
        hits.append(
            SearchHit(
                title=data.get("Heading") or query,
                url=data.get("AbstractURL") or "",
                snippet=abstract,
            )
        )

    for topic in (data.get("RelatedTopics") or [])[:3]:
        if not isinstance(topic, dict):
            continue
        text, first_url = topic.get("Text"), topic.get("FirstURL")
        if text and first_url:
            hits.append(SearchHit(title=text.split(" - ")[0], url=first_url, snippet=text))

    if data.get("Answer") and data.get("AnswerType"):
        hits.append(
            SearchHit(
                title=f"{data['AnswerType']}: {query}",
                url=f"https://duckduckgo.com/?q={quote_plus(query)}",
                snippet=str(data["Answer"]),
            )
        )
    return hits


async def _wikipedia(client: Any, query: str, lang: str, limit: int) -> list[SearchHit]:
    response = await client.get(
        f"https://{lang}.wikipedia.org/w/api.php",
        params={
            "action": "opensearch",
            "search": query,
            "limit": limit,
            "namespace": 0,
            "format": "json",
        },
        headers=_HEADERS,
        timeout=15.0,
    )
    response.raise_for_status()
    return decode_opensearch(response.json(), limit)


def decode_opensearch(data: list[Any], limit: int) -> list[SearchHit]:
    """opensearch answers ``[query, titles, descriptions, urls]``."""
    if not isinstance(data, list) or len(data) < 4:
        return []
    _, titles, descriptions, urls = data[:4]
    hits: list[SearchHit] = []
    for i, title in enumerate(titles[:limit]):
        url = urls[i] if i < len(urls) else ""
        if not title or not url:
            continue
        description = descriptions[i] if i < len(descriptions) else ""
        hits.append(SearchHit(title=title, url=url, snippet=description or "Wikipedia article"))
    return hits
