"""resolution_cache tool: read and seed the shared key -> identifier cache."""

from __future__ import annotations

import json
from typing import Any

from scoutbot.agent.tools.base import Tool, error_payload
from scoutbot.cache.resolution import ResolutionCache

_SUPPORTED_ACTIONS = ("get", "put", "all", "stats")


class ResolutionCacheTool(Tool):
    name = "resolution_cache"
    description = (
        "Look up or store resolved identifiers (e.g. company name -> ticker symbol). "
        "Keys are case-insensitive."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": list(_SUPPORTED_ACTIONS)},
            "key": {"type": "string", "minLength": 1},
            "value": {"type": "string", "minLength": 1},
            "label": {"type": "string"},
        },
        "required": ["action"],
    }

    def __init__(self, cache: ResolutionCache):
        self.cache = cache

    async def execute(self, action: str, **kwargs: Any) -> str:
        try:
            result = self._dispatch(action, kwargs)
        except ValueError as e:
            result = error_payload("invalid_input", str(e))
        except Exception as e:
            result = error_payload("resolution_cache_failed", str(e))
        return json.dumps(result, ensure_ascii=False)

    def _dispatch(self, action: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        if action == "get":
            key = _require(kwargs, "key")
            entry = self.cache.get(key)
            return {"ok": True, "found": entry is not None, "entry": entry.to_dict() if entry else None}

        if action == "put":
            entry = self.cache.put(
                _require(kwargs, "key"),
                _require(kwargs, "value"),
                str(kwargs.get("label") or ""),
            )
            return {"ok": True, "entry": entry.to_dict()}

        if action == "all":
            return {"ok": True, "entries": [e.to_dict() for e in self.cache.all()]}

        if action == "stats":
            return {"ok": True, **self.cache.stats()}

        raise ValueError(f"action must be one of {_SUPPORTED_ACTIONS}")


def _require(kwargs: dict[str, Any], name: str) -> str:
    value = kwargs.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")
    return value
