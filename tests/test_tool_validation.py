from typing import Any

import pytest

from scoutbot.agent.tools.base import Tool
from scoutbot.agent.tools.browser import InteractiveScraperTool, SessionRegistry
from scoutbot.agent.tools.registry import ToolRegistry


class SampleTool(Tool):
    @property
    def name(self) -> str:
        return "sample"

    @property
    def description(self) -> str:
        return "sample tool"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 2},
                "count": {"type": "integer", "minimum": 1, "maximum": 10},
                "mode": {"type": "string", "enum": ["fast", "full"]},
                "meta": {
                    "type": "object",
                    "properties": {
                        "tag": {"type": "string"},
                        "flags": {
                            "type": "array",
                            "items": {"type": "string"},
                        },
                    },
                    "required": ["tag"],
                },
            },
            "required": ["query", "count"],
        }

    async def execute(self, **kwargs: Any) -> str:
        if kwargs.get("mode") == "full":
            raise RuntimeError("full mode exploded")
        return "ok"


def test_validate_params_missing_required() -> None:
    tool = SampleTool()
    errors = tool.validate_params({"query": "hi"})
    assert "missing required count" in "; ".join(errors)


def test_validate_params_type_and_range() -> None:
    tool = SampleTool()
    errors = tool.validate_params({"query": "hi", "count": 0})
    assert any("count must be >= 1" in e for e in errors)

    errors = tool.validate_params({"query": "hi", "count": "2"})
    assert any("count should be integer" in e for e in errors)

    errors = tool.validate_params({"query": "hi", "count": True})
    assert any("count should be integer" in e for e in errors)


def test_validate_params_enum_and_min_length() -> None:
    tool = SampleTool()
    errors = tool.validate_params({"query": "h", "count": 2, "mode": "slow"})
    assert any("query must be at least 2 chars" in e for e in errors)
    assert any("mode must be one of" in e for e in errors)


def test_validate_params_nested_object_and_array() -> None:
    tool = SampleTool()
    errors = tool.validate_params(
        {
            "query": "hi",
            "count": 2,
            "meta": {"flags": [1, "ok"]},
        }
    )
    assert any("missing required meta.tag" in e for e in errors)
    assert any("meta.flags[0] should be string" in e for e in errors)


def test_validate_params_ignores_unknown_fields() -> None:
    tool = SampleTool()
    errors = tool.validate_params({"query": "hi", "count": 2, "extra": "x"})
    assert errors == []


@pytest.mark.asyncio
async def test_registry_returns_validation_error() -> None:
    reg = ToolRegistry()
    reg.register(SampleTool())
    result = await reg.execute("sample", {"query": "hi"})
    assert "Invalid parameters" in result


@pytest.mark.asyncio
async def test_registry_reports_unknown_tool_and_execution_errors() -> None:
    reg = ToolRegistry()
    reg.register(SampleTool())

    assert await reg.execute("missing", {}) == "Error: Tool 'missing' not found"
    result = await reg.execute("sample", {"query": "hi", "count": 1, "mode": "full"})
    assert result == "Error executing sample: full mode exploded"
    assert await reg.execute("sample", {"query": "hi", "count": 1}) == "ok"


@pytest.mark.asyncio
async def test_scraper_schema_rejects_bad_action_before_execution(make_launcher, clock) -> None:
    reg = ToolRegistry()
    reg.register(InteractiveScraperTool(SessionRegistry(make_launcher(), clock=clock)))

    result = await reg.execute("interactive_scraper", {"action": "crawl"})
    assert "action must be one of" in result

    result = await reg.execute("interactive_scraper", {"action": "extract", "dataSelectors": "div"})
    assert "dataSelectors should be array" in result


def test_definitions_use_function_schema() -> None:
    reg = ToolRegistry()
    reg.register(SampleTool())

    [definition] = reg.get_definitions()
    assert definition["type"] == "function"
    assert definition["function"]["name"] == "sample"
    assert "sample" in reg
    assert reg.tool_names == ["sample"]
    reg.unregister("sample")
    assert len(reg) == 0
