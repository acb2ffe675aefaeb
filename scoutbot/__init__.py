"""scoutbot - browser-backed scraping sessions and multi-provider web search."""

__version__ = "0.1.0"
