"""interactive_scraper tool: stateful page sessions driven step by step."""

from __future__ import annotations

import json
from typing import Any

from scoutbot.agent.tools.base import Tool, error_payload
from scoutbot.agent.tools.browser.analyzer import PageAnalyzer
from scoutbot.agent.tools.browser.extraction import ExtractionEngine
from scoutbot.agent.tools.browser.session import SessionRegistry
from scoutbot.errors import ScoutError

_SUPPORTED_ACTIONS = ("start", "analyze", "extract", "get_session", "cleanup")


class InteractiveScraperTool(Tool):
    """Open a page in a session, analyze its structure, extract records, close it."""

    name = "interactive_scraper"
    description = (
        "Scrape a website in steps. 'start' opens a session on a URL, 'analyze' "
        "reports the page structure, 'extract' returns records matching the "
        "instructions (optionally with CSS dataSelectors), 'get_session' shows "
        "session state and 'cleanup' closes it."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": list(_SUPPORTED_ACTIONS)},
            "url": {"type": "string", "minLength": 1, "description": "Page to open (start)"},
            "sessionId": {"type": "string", "minLength": 1},
            "instructions": {
                "type": "string",
                "minLength": 1,
                "description": "What to extract, e.g. 'list companies and websites'",
            },
            "dataSelectors": {
                "type": "array",
                "items": {"type": "string"},
                "description": "CSS selectors for the record containers, tried first",
            },
        },
        "required": ["action"],
    }

    def __init__(
        self,
        registry: SessionRegistry,
        analyzer: PageAnalyzer | None = None,
        engine: ExtractionEngine | None = None,
    ):
        self.registry = registry
        self.analyzer = analyzer or PageAnalyzer(registry)
        self.engine = engine or ExtractionEngine(registry)

    async def execute(self, action: str, **kwargs: Any) -> str:
        try:
            result = await self._dispatch(action, kwargs)
        except ScoutError as e:
            result = error_payload(e.code, e.message, details=e.details)
        except ValueError as e:
            result = error_payload("invalid_input", str(e))
        except Exception as e:
            result = error_payload("interactive_scraper_failed", str(e))
        return json.dumps(result, ensure_ascii=False)

    async def _dispatch(self, action: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        if action == "start":
            session = await self.registry.create(_require(kwargs, "url"))
            return {
                "ok": True,
                "sessionId": session.id,
                "normalizedUrl": session.target_url,
                "finalUrl": session.final_url or None,
                "title": session.title or None,
                "status": session.status,
            }

        if action == "analyze":
            session = self.registry.get(_require(kwargs, "sessionId"))
            digest = await self.analyzer.analyze(session)
            return {"ok": True, "sessionId": session.id, "pageDigest": digest.to_dict()}

        if action == "extract":
            session = self.registry.get(_require(kwargs, "sessionId"))
            selectors = kwargs.get("dataSelectors")
            if isinstance(selectors, str):
                selectors = [selectors]
            result = await self.engine.extract(session, _require(kwargs, "instructions"), selectors)
            return {"ok": True, "sessionId": session.id, **result.to_dict()}

        if action == "get_session":
            session = self.registry.get(_require(kwargs, "sessionId"))
            return {"ok": True, "session": session.to_dict()}

        if action == "cleanup":
            session = await self.registry.cleanup(_require(kwargs, "sessionId"))
            return {"ok": True, "sessionId": session.id, "status": session.status}

        raise ValueError(f"action must be one of {_SUPPORTED_ACTIONS}")


def _require(kwargs: dict[str, Any], name: str) -> str:
    value = kwargs.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")
    return value.strip()
