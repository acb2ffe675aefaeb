"""Multi-provider web search."""

from scoutbot.agent.tools.websearch.models import (
    AllProvidersFailed,
    ProviderAttempt,
    SearchHit,
    SearchResolution,
    SearchResult,
    WebSearchError,
)
from scoutbot.agent.tools.websearch.orchestrator import SearchProviderOrchestrator
from scoutbot.agent.tools.websearch.tool import WebSearchTool

__all__ = [
    "AllProvidersFailed",
    "ProviderAttempt",
    "SearchHit",
    "SearchProviderOrchestrator",
    "SearchResolution",
    "SearchResult",
    "WebSearchError",
    "WebSearchTool",
]
