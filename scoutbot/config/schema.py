"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SEARXNG_INSTANCES = [
    "https://searx.be",
    "https://searx.tiekoetter.com",
    "https://opnxng.com",
    "https://searxng.world",
    "https://searx.oloke.xyz",
    "https://search.sapti.me",
    "https://searx.work",
]

DEFAULT_PROVIDER_ORDER = ["searxng", "serpapi", "fetch-fallback"]


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearxngProviderConfig(Base):
    """Public SearXNG instances, tried in order."""

    instances: list[str] = Field(default_factory=lambda: list(DEFAULT_SEARXNG_INSTANCES))
    timeout_s: float = 12.0
    language: str = "auto"
    response_format: Literal["json", "html"] = "json"
    auto_category: bool = True


class SerpApiProviderConfig(Base):
    api_key: str = ""
    base_url: str = "https://serpapi.com/search"
    engine: str = "google"
    country: str = "fr"
    language: str = "fr"


class FetchFallbackProviderConfig(Base):
    """Keyless fallback: DuckDuckGo Instant Answer, then Wikipedia opensearch."""

    duckduckgo_url: str = "https://api.duckduckgo.com/"
    wikipedia_languages: list[str] = Field(default_factory=lambda: ["en", "fr"])
    wikipedia_limit: int = 2


class SearchProvidersConfig(Base):
    searxng: SearxngProviderConfig = Field(default_factory=SearxngProviderConfig)
    serpapi: SerpApiProviderConfig = Field(default_factory=SerpApiProviderConfig)
    fetch_fallback: FetchFallbackProviderConfig = Field(default_factory=FetchFallbackProviderConfig)


class WebSearchConfig(Base):
    """Multi-provider web search configuration."""

    enabled: bool = True
    provider_order: list[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDER_ORDER))
    per_provider_timeout_s: float = 15.0
    max_results: int = 10
    cache_results: bool = True
    providers: SearchProvidersConfig = Field(default_factory=SearchProvidersConfig)


class BrowserToolConfig(Base):
    """Interactive scraping sessions backed by Playwright."""

    enabled: bool = True
    default_browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    timeout_ms: int = 30000
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"
    allow_private_network: bool = False
    block_file_scheme: bool = True
    auto_install_browsers: bool = True
    idle_timeout_s: float = 600.0
    sweep_interval_s: float = 60.0
    closed_retention_s: float = 3600.0
    scroll_passes: int = 3
    scroll_delay_ms: int = 1000
    max_links: int = 50
    max_records: int = 50
    block_min_body_chars: int = 200
    block_max_link_ratio: float = 0.6


class WebToolsConfig(Base):
    search: WebSearchConfig = Field(default_factory=WebSearchConfig)
    browser: BrowserToolConfig = Field(default_factory=BrowserToolConfig)


class ResolutionCacheConfig(Base):
    """Seed entries, e.g. ``{"APPLE": {"value": "NASDAQ:AAPL", "label": "Apple Inc."}}``."""

    enabled: bool = True
    preload: dict[str, str | dict[str, str]] = Field(default_factory=dict)


class ToolsConfig(Base):
    web: WebToolsConfig = Field(default_factory=WebToolsConfig)
    cache: ResolutionCacheConfig = Field(default_factory=ResolutionCacheConfig)


class SecurityConfig(Base):
    redact_sensitive_output: bool = True


class Config(BaseSettings):
    """Root configuration for scoutbot."""

    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    model_config = SettingsConfigDict(
        env_prefix="SCOUTBOT_",
        env_nested_delimiter="__",
        alias_generator=to_camel,
        populate_by_name=True,
    )
