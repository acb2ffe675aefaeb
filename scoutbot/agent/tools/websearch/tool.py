"""web_search tool: multi-provider search exposed to the agent."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from scoutbot.agent.tools.base import Tool, error_payload
from scoutbot.agent.tools.websearch.orchestrator import SearchProviderOrchestrator
from scoutbot.errors import ScoutError

if TYPE_CHECKING:
    from scoutbot.config.schema import WebSearchConfig


class WebSearchTool(Tool):
    """Search the web through SearXNG, SerpAPI and a keyless fallback, in order."""

    name = "web_search"
    description = (
        "Search the web. Providers are tried in order (searxng, serpapi, fetch-fallback) "
        "with per-provider timeouts; returns ranked results and the attempts made."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "minLength": 1, "description": "Search query"},
            "provider": {
                "type": "string",
                "description": "Provider to try first; unknown names use the default chain",
            },
            "apiKeys": {
                "type": "object",
                "description": "Per-provider API keys, e.g. {\"serpapi\": \"...\"}",
            },
            "count": {"type": "integer", "minimum": 1, "maximum": 10},
        },
        "required": ["query"],
    }

    def __init__(
        self,
        orchestrator: SearchProviderOrchestrator | None = None,
        web_search_config: "WebSearchConfig | None" = None,
    ):
        self.orchestrator = orchestrator or SearchProviderOrchestrator(web_search_config)

    async def execute(self, query: str, **kwargs: Any) -> str:
        provider = kwargs.get("provider")
        api_keys = kwargs.get("apiKeys") or {}
        count = kwargs.get("count")

        try:
            if count is not None:
                count = min(max(int(count), 1), 10)
            if not isinstance(api_keys, dict):
                raise ValueError("apiKeys must be an object")
            outcome = await self.orchestrator.resolve(
                query,
                provider_order=self.orchestrator.order_for(provider),
                api_keys={str(k): str(v) for k, v in api_keys.items() if v},
                count=count,
            )
            return json.dumps(outcome.to_dict(), ensure_ascii=False)
        except ScoutError as e:
            payload = error_payload(e.code, e.message, details=e.details)
        except ValueError as e:
            payload = error_payload("invalid_input", str(e))
        except Exception as e:
            payload = error_payload("web_search_failed", str(e))
        payload["attempts"] = []
        return json.dumps(payload, ensure_ascii=False)
