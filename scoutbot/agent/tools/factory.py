"""Tool registry factory for the content-acquisition tools."""

from scoutbot.agent.tools.browser import ExtractionEngine, InteractiveScraperTool, PageAnalyzer, SessionRegistry
from scoutbot.agent.tools.cache import ResolutionCacheTool
from scoutbot.agent.tools.registry import ToolRegistry
from scoutbot.agent.tools.websearch import SearchProviderOrchestrator, WebSearchTool
from scoutbot.cache.resolution import ResolutionCache
from scoutbot.config.schema import BrowserToolConfig, ResolutionCacheConfig, WebSearchConfig


def build_tool_registry(
    *,
    web_search_config: WebSearchConfig,
    web_browser_config: BrowserToolConfig,
    cache_config: ResolutionCacheConfig,
    orchestrator: SearchProviderOrchestrator,
    cache: ResolutionCache,
    session_registry: SessionRegistry,
    analyzer: PageAnalyzer | None = None,
    engine: ExtractionEngine | None = None,
) -> ToolRegistry:
    """Register the tools enabled in config around shared, already-built services."""
    registry = ToolRegistry()

    if web_search_config.enabled:
        registry.register(WebSearchTool(orchestrator=orchestrator))

    if web_browser_config.enabled:
        registry.register(
            InteractiveScraperTool(
                session_registry,
                analyzer=analyzer,
                engine=engine,
            )
        )

    if cache_config.enabled:
        registry.register(ResolutionCacheTool(cache))

    return registry
