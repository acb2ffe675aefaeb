"""SearXNG metasearch adapter over a list of public instances."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from scoutbot.agent.tools.websearch.models import SearchHit, WebSearchError

if TYPE_CHECKING:
    from scoutbot.config.schema import SearxngProviderConfig

_CATEGORY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("it", re.compile(r"\b(code|programming|javascript|python|react|api|database|algorithm|software|bug|debug|framework|library)\b")),
    ("academic", re.compile(r"\b(research|study|analysis|paper|journal|academic|scholar|thesis|publication|peer.review)\b")),
    ("medical", re.compile(r"\b(medical|health|disease|treatment|medicine|clinical|patient|therapy|drug|diagnosis)\b")),
    ("physics", re.compile(r"\b(physics|quantum|relativity|mechanics|thermodynamics|electromagnetism|particle|wave)\b")),
    ("biology", re.compile(r"\b(biology|genetics|dna|rna|cell|organism|evolution|ecology|molecular|protein)\b")),
    ("news", re.compile(r"\b(news|breaking|latest|today|current|recent|update|happened|event)\b")),
]

_ENGINES: dict[str, str] = {
    "general": "google,bing,duckduckgo,wikipedia,startpage",
    "it": "stackoverflow,github,searchcode code,google,bing",
    "academic": "google scholar,semantic scholar,arxiv,pubmed,crossref",
    "news": "google,bing,reddit,hackernews",
    "medical": "pubmed,google scholar,semantic scholar",
    "physics": "arxiv,google scholar,semantic scholar",
    "biology": "pubmed,arxiv,google scholar",
}

_RESULT_SELECTORS = (
    ".result",
    "#results .result",
    ".result-default",
    "article.result",
    "#main .result",
)
_TITLE_SELECTORS = ("h3 a", ".result-title a", "a h3", "h3", ".title a", ".result-header a")
_URL_SELECTORS = ("h3 a", ".result-title a", ".title a", ".result-header a", "a[href]")
_SNIPPET_SELECTORS = (".result-content", ".content", "p", ".result-snippet", ".snippet")

_HEADERS = {
    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
}


def detect_search_category(query: str) -> str:
    """Map query keywords to a SearXNG category; ``general`` when nothing matches."""
    keywords = query.lower()
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(keywords):
            return category
    return "general"


def engines_for(category: str) -> str:
    return _ENGINES.get(category, _ENGINES["general"])


async def search_searxng(
    *,
    query: str,
    count: int,
    config: "SearxngProviderConfig",
    api_key: str = "",
) -> list[SearchHit]:
    """Query each configured instance until one returns hits.

    Returns an empty list when some instance answered but none had results,
    and raises ``WebSearchError`` when every instance failed.
    """
    if not config.instances:
        raise WebSearchError("no SearXNG instances configured")

    category = detect_search_category(query) if config.auto_category else "general"
    params: dict[str, Any] = {
        "q": query,
        "language": config.language,
        "categories": category,
        "engines": engines_for(category),
        "format": config.response_format,
        "pageno": 1,
    }

    failures: list[str] = []
    answered = False
    for instance in config.instances:
        url = f"{instance.rstrip('/')}/search"
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(
                    url,
                    params=params,
                    headers=_HEADERS,
                    timeout=config.timeout_s,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("SearXNG instance {} failed: {}", instance, e)
            failures.append(f"{instance}: {e}")
            continue

        hits = _decode_response(response, count)
        logger.debug("SearXNG instance {} returned {} hits (category={})", instance, len(hits), category)
        if hits:
            return hits
        answered = True

    if answered:
        return []
    raise WebSearchError("all SearXNG instances failed: " + "; ".join(failures))


def _decode_response(response: Any, count: int) -> list[SearchHit]:
    try:
        payload = response.json()
    except ValueError:
        return decode_html(response.text, count)
    if not isinstance(payload, dict):
        return []
    return decode_json(payload, count)


def decode_json(payload: dict[str, Any], count: int) -> list[SearchHit]:
    results = payload.get("results") or []
    return [
        SearchHit(
            title=str(item.get("title", "")).strip(),
            url=str(item.get("url", "")).strip(),
            snippet=str(item.get("content", "")).strip(),
        )
        for item in results[:count]
        if isinstance(item, dict)
    ]


def decode_html(html: str, count: int) -> list[SearchHit]:
    """Parse the result list of an instance that only serves HTML."""
    soup = BeautifulSoup(html or "", "html.parser")
    for selector in _RESULT_SELECTORS:
        elements = soup.select(selector)
        if not elements:
            continue

        hits: list[SearchHit] = []
        for element in elements[:count]:
            title = _first_text(element, _TITLE_SELECTORS)
            url = _first_href(element, _URL_SELECTORS)
            if not title or not url:
                continue
            hits.append(
                SearchHit(
                    title=title,
                    url=url if url.startswith("http") else f"https://{url.lstrip('/')}",
                    snippet=_first_text(element, _SNIPPET_SELECTORS),
                )
            )
        return hits
    return []


def _first_text(element: Any, selectors: tuple[str, ...]) -> str:
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None:
            text = found.get_text(" ", strip=True)
            if text:
                return text
    return ""


def _first_href(element: Any, selectors: tuple[str, ...]) -> str:
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None and found.get("href"):
            return str(found["href"]).strip()
    return ""
