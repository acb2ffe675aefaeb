"""Turn a search resolution into a numbered context block for a model prompt."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from loguru import logger

from scoutbot.agent.tools.websearch.models import AllProvidersFailed, SearchResult
from scoutbot.agent.tools.websearch.orchestrator import SearchProviderOrchestrator
from scoutbot.errors import ScoutError


@dataclass(slots=True)
class RagContext:
    sources: list[SearchResult] = field(default_factory=list)
    context: str = ""
    provider: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


def format_context(results: list[SearchResult]) -> str:
    """``[n] title: snippet`` blocks separated by blank lines."""
    blocks = []
    for result in results:
        block = f"[{result.rank}] {result.title}"
        if result.snippet:
            block += f": {result.snippet}"
        blocks.append(block)
    return "\n\n".join(blocks)


async def build_search_context(
    orchestrator: SearchProviderOrchestrator,
    query: str,
    provider: str | None = None,
    api_keys: Mapping[str, str] | None = None,
) -> RagContext:
    """Search and format; failures come back as ``error``, never raised."""
    try:
        outcome = await orchestrator.resolve(
            query,
            provider_order=orchestrator.order_for(provider),
            api_keys=api_keys,
        )
    except ScoutError as e:
        return RagContext(error=e.message)

    if isinstance(outcome, AllProvidersFailed):
        logger.warning("No search context for '{}': {}", query, outcome.message)
        return RagContext(error=outcome.message)

    return RagContext(
        sources=list(outcome.results),
        context=format_context(outcome.results),
        provider=outcome.provider,
    )
