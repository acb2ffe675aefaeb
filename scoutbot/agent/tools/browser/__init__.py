"""Browser-backed scraping sessions."""

from scoutbot.agent.tools.browser.analyzer import PageAnalyzer, PageDigest
from scoutbot.agent.tools.browser.extraction import ExtractionEngine, ExtractionResult
from scoutbot.agent.tools.browser.launcher import Launcher, PageHandle, PageSnapshot, PlaywrightLauncher
from scoutbot.agent.tools.browser.session import Session, SessionRegistry
from scoutbot.agent.tools.browser.tool import InteractiveScraperTool

__all__ = [
    "ExtractionEngine",
    "ExtractionResult",
    "InteractiveScraperTool",
    "Launcher",
    "PageAnalyzer",
    "PageDigest",
    "PageHandle",
    "PageSnapshot",
    "PlaywrightLauncher",
    "Session",
    "SessionRegistry",
]
