"""Configuration loading utilities."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from scoutbot.config.schema import DEFAULT_PROVIDER_ORDER, Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".scoutbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to load config from {}: {}", path, e)
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    tools = data.setdefault("tools", {})

    # Move legacy tools.browser.* -> tools.web.browser.*
    legacy_browser_cfg = tools.pop("browser", None)
    web_cfg = tools.setdefault("web", {})
    if legacy_browser_cfg and "browser" not in web_cfg:
        web_cfg["browser"] = legacy_browser_cfg

    search_cfg = web_cfg.setdefault("search", {})

    # Single provider string -> providerOrder with that provider first
    legacy_provider = search_cfg.pop("provider", None)
    if isinstance(legacy_provider, str) and legacy_provider and "providerOrder" not in search_cfg:
        search_cfg["providerOrder"] = [legacy_provider] + [p for p in DEFAULT_PROVIDER_ORDER if p != legacy_provider]

    providers_cfg = search_cfg.setdefault("providers", {})

    # Move legacy tools.web.search.serpapiKey -> providers.serpapi.apiKey
    legacy_api_key = search_cfg.pop("serpapiKey", None) or search_cfg.pop("apiKey", None)
    if legacy_api_key:
        serpapi_cfg = providers_cfg.setdefault("serpapi", {})
        if not serpapi_cfg.get("apiKey"):
            serpapi_cfg["apiKey"] = legacy_api_key

    # Fill default provider base URLs when missing/empty
    serpapi_cfg = providers_cfg.setdefault("serpapi", {})
    if not serpapi_cfg.get("baseUrl"):
        serpapi_cfg["baseUrl"] = "https://serpapi.com/search"
    fallback_cfg = providers_cfg.setdefault("fetchFallback", {})
    if not fallback_cfg.get("duckduckgoUrl"):
        fallback_cfg["duckduckgoUrl"] = "https://api.duckduckgo.com/"

    # Move legacy tools.redactSensitiveOutput -> security.redactSensitiveOutput
    security_cfg = data.setdefault("security", {})
    legacy_redaction = tools.pop("redactSensitiveOutput", None)
    if legacy_redaction is None:
        legacy_redaction = tools.pop("redact_sensitive_output", None)
    if legacy_redaction is not None and "redactSensitiveOutput" not in security_cfg:
        security_cfg["redactSensitiveOutput"] = legacy_redaction

    return data


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
