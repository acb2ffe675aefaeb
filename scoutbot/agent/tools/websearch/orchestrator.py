"""Ordered multi-provider search with per-provider timeouts and fallback."""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from scoutbot.agent.tools.websearch.fallback import search_fetch_fallback
from scoutbot.agent.tools.websearch.models import (
    AllProvidersFailed,
    ProviderAttempt,
    SearchHit,
    SearchResolution,
    SearchResult,
)
from scoutbot.agent.tools.websearch.searxng import search_searxng
from scoutbot.agent.tools.websearch.serpapi import search_serpapi
from scoutbot.cache.resolution import ResolutionCache
from scoutbot.config.schema import DEFAULT_PROVIDER_ORDER, WebSearchConfig
from scoutbot.errors import ProviderEmpty, ProviderError, ProviderTimeout, ValidationError
from scoutbot.utils.redaction import SensitiveOutputRedactor

Searcher = Callable[..., Awaitable[list[SearchHit]]]
CACHE_PREFIX = "search:"


def normalize_hits(hits: Iterable[SearchHit], limit: int) -> list[SearchResult]:
    """Drop URL-less entries, collapse duplicate URLs, rank 1..n."""
    results: list[SearchResult] = []
    seen: set[str] = set()
    for hit in hits:
        url = (hit.url or "").strip()
        if not url or url in seen:
            continue
        seen.add(url)
        results.append(
            SearchResult(
                title=(hit.title or "").strip() or url,
                url=url,
                snippet=(hit.snippet or "").strip(),
                rank=len(results) + 1,
            )
        )
        if len(results) >= limit:
            break
    return results


class SearchProviderOrchestrator:
    """Resolve a query by trying providers strictly in order until one yields results."""

    _ENV_KEYS: dict[str, str] = {
        "serpapi": "SERPAPI_API_KEY",
    }
    _SEARCHERS: dict[str, Searcher] = {
        "searxng": search_searxng,
        "serpapi": search_serpapi,
        "fetch-fallback": search_fetch_fallback,
    }

    def __init__(
        self,
        config: WebSearchConfig | None = None,
        cache: ResolutionCache | None = None,
        *,
        searchers: Mapping[str, Searcher] | None = None,
        redactor: SensitiveOutputRedactor | None = None,
    ):
        self.config = config or WebSearchConfig()
        self.cache = cache
        self.redactor = redactor or SensitiveOutputRedactor()
        self._searchers: dict[str, Searcher] = dict(searchers if searchers is not None else self._SEARCHERS)

    @property
    def providers(self) -> list[str]:
        return list(self._searchers)

    def default_order(self) -> list[str]:
        configured = [p for p in self.config.provider_order if p in self._searchers]
        if configured:
            return configured
        return [p for p in DEFAULT_PROVIDER_ORDER if p in self._searchers] or list(self._searchers)

    def order_for(self, provider: str | None) -> list[str]:
        """A recognized provider goes first, then the rest of the default chain."""
        chain = self.default_order()
        name = (provider or "").strip().lower()
        if name not in self._searchers:
            return chain
        return [name] + [p for p in chain if p != name]

    async def resolve(
        self,
        query: str,
        provider_order: list[str] | None = None,
        per_provider_timeout: float | None = None,
        api_keys: Mapping[str, str] | None = None,
        count: int | None = None,
    ) -> SearchResolution | AllProvidersFailed:
        """Run the provider chain; provider failures end up in attempts, never raised."""
        query = (query or "").strip()
        if not query:
            raise ValidationError("query must not be empty")

        limit = max(1, min(count or self.config.max_results, self.config.max_results))
        timeout = per_provider_timeout or self.config.per_provider_timeout_s
        order = list(provider_order) if provider_order else self.default_order()

        cached = self._from_cache(query)
        if cached is not None:
            logger.debug("Search cache hit for '{}'", query)
            return cached

        attempts: list[ProviderAttempt] = []
        for name in order:
            started_at = datetime.now().isoformat(timespec="seconds")
            t0 = time.perf_counter()
            try:
                results = await self._call(name, query, limit, timeout, api_keys or {})
            except ProviderError as e:
                attempts.append(
                    ProviderAttempt(
                        provider=name,
                        started_at=started_at,
                        outcome=e.outcome,
                        reason=e.message,
                        duration_ms=_elapsed_ms(t0),
                    )
                )
                logger.warning("Search provider {} {}: {}; falling back", name, e.outcome, e.message)
                continue

            attempts.append(
                ProviderAttempt(
                    provider=name,
                    started_at=started_at,
                    outcome="success",
                    result_count=len(results),
                    duration_ms=_elapsed_ms(t0),
                )
            )
            logger.info("Search provider {} returned {} results for '{}'", name, len(results), query)
            self._remember(query, results[0])
            return SearchResolution(query=query, provider=name, results=results, attempts=attempts)

        logger.warning("All search providers failed for '{}'", query)
        return AllProvidersFailed(query=query, attempts=attempts)

    async def _call(
        self,
        name: str,
        query: str,
        limit: int,
        timeout: float,
        api_keys: Mapping[str, str],
    ) -> list[SearchResult]:
        searcher = self._searchers.get(name)
        if searcher is None:
            raise ProviderError(name, f"unknown search provider: {name}")

        provider_cfg = self._provider_config(name)
        api_key = self._api_key(name, provider_cfg, api_keys)
        if api_key:
            self.redactor.add_secrets([api_key])

        try:
            hits = await asyncio.wait_for(
                searcher(query=query, count=limit, config=provider_cfg, api_key=api_key),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProviderTimeout(name, f"{name} timed out after {timeout:g}s") from None
        except Exception as e:
            raise ProviderError(name, self.redactor.redact(f"{name} search failed: {e}")) from e

        results = normalize_hits(hits or [], limit)
        if not results:
            raise ProviderEmpty(name, f"{name} returned no results")
        return results

    def _provider_config(self, name: str) -> Any:
        return getattr(self.config.providers, name.replace("-", "_"), None)

    def _api_key(self, name: str, provider_cfg: Any, api_keys: Mapping[str, str]) -> str:
        explicit = api_keys.get(name) or api_keys.get(name.replace("-", "_"))
        if explicit:
            return str(explicit)
        configured = getattr(provider_cfg, "api_key", "") if provider_cfg is not None else ""
        if configured:
            return configured
        env_key = self._ENV_KEYS.get(name)
        return os.environ.get(env_key, "") if env_key else ""

    def _from_cache(self, query: str) -> SearchResolution | None:
        if self.cache is None:
            return None
        entry = self.cache.get(CACHE_PREFIX + query)
        if entry is None:
            return None
        result = SearchResult(title=entry.label or entry.value, url=entry.value, snippet="", rank=1)
        return SearchResolution(query=query, provider="cache", results=[result], attempts=[])

    def _remember(self, query: str, top: SearchResult) -> None:
        if self.cache is None or not self.config.cache_results:
            return
        self.cache.put(CACHE_PREFIX + query, top.url, top.title)


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)
