"""Builds the shared search, cache and scraping services once per process."""

from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

from scoutbot.agent.rag import RagContext, build_search_context
from scoutbot.agent.tools.browser import (
    ExtractionEngine,
    Launcher,
    PageAnalyzer,
    PlaywrightLauncher,
    SessionRegistry,
)
from scoutbot.agent.tools.factory import build_tool_registry
from scoutbot.agent.tools.websearch import SearchProviderOrchestrator
from scoutbot.agent.tools.websearch.orchestrator import Searcher
from scoutbot.cache.resolution import ResolutionCache
from scoutbot.config.loader import load_config
from scoutbot.config.schema import Config
from scoutbot.utils.redaction import SensitiveOutputRedactor


class ScoutRuntime:
    """Owns the cache, search orchestrator, session registry and tool registry.

    Pass ``launcher`` or ``searchers`` to swap the browser or the search
    backends, e.g. in tests.
    """

    def __init__(
        self,
        config: Config | None = None,
        launcher: Launcher | None = None,
        searchers: Mapping[str, Searcher] | None = None,
    ):
        self.config = config or load_config()
        tools = self.config.tools

        self.cache = ResolutionCache(tools.cache.preload if tools.cache.enabled else None)
        self.redactor = SensitiveOutputRedactor(enabled=self.config.security.redact_sensitive_output)
        self.orchestrator = SearchProviderOrchestrator(
            tools.web.search,
            self.cache if tools.web.search.cache_results else None,
            searchers=searchers,
            redactor=self.redactor,
        )

        self.launcher = launcher or PlaywrightLauncher(tools.web.browser)
        self.sessions = SessionRegistry(self.launcher, tools.web.browser)
        self.analyzer = PageAnalyzer(self.sessions)
        self.engine = ExtractionEngine(self.sessions)

        self.tools = build_tool_registry(
            web_search_config=tools.web.search,
            web_browser_config=tools.web.browser,
            cache_config=tools.cache,
            orchestrator=self.orchestrator,
            cache=self.cache,
            session_registry=self.sessions,
            analyzer=self.analyzer,
            engine=self.engine,
        )

    async def start(self) -> None:
        """Start background work (the idle session sweep)."""
        await self.sessions.start()
        logger.info("Scout runtime started with tools: {}", ", ".join(self.tools.tool_names))

    async def shutdown(self) -> None:
        """Stop the sweep, close every live session, then the browser."""
        self.sessions.stop()
        closed = await self.sessions.close_all()
        if closed:
            logger.info("Closed {} live sessions on shutdown", closed)
        try:
            await self.launcher.close()
        except Exception as e:
            logger.warning("Launcher shutdown failed: {}", e)

    async def search_context(
        self,
        query: str,
        provider: str | None = None,
        api_keys: Mapping[str, str] | None = None,
    ) -> RagContext:
        return await build_search_context(self.orchestrator, query, provider=provider, api_keys=api_keys)
