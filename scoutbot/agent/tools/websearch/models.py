"""Shared web search models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from scoutbot.errors import ProviderOutcome


class WebSearchError(Exception):
    """Raised by a provider adapter when its backend cannot answer."""


@dataclass(slots=True)
class SearchHit:
    """Raw item decoded from one provider response."""

    title: str
    url: str
    snippet: str = ""


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Normalized search result; ``rank`` is 1-based in the final list."""

    title: str
    url: str
    snippet: str
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "snippet": self.snippet, "rank": self.rank}


@dataclass(slots=True)
class ProviderAttempt:
    provider: str
    started_at: str
    outcome: ProviderOutcome
    reason: str = ""
    result_count: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "startedAt": self.started_at,
            "outcome": self.outcome,
            "reason": self.reason,
            "resultCount": self.result_count,
            "durationMs": self.duration_ms,
        }


@dataclass(slots=True)
class SearchResolution:
    query: str
    provider: str
    results: list[SearchResult]
    attempts: list[ProviderAttempt] = field(default_factory=list)

    ok = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "query": self.query,
            "provider": self.provider,
            "results": [r.to_dict() for r in self.results],
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(slots=True)
class AllProvidersFailed:
    """Every provider in the chain failed; one attempt per provider, in order."""

    query: str
    attempts: list[ProviderAttempt] = field(default_factory=list)

    ok = False

    @property
    def message(self) -> str:
        tried = ", ".join(f"{a.provider}={a.outcome}" for a in self.attempts) or "none"
        return f"All search providers failed for '{self.query}' ({tried})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "query": self.query,
            "error": {"code": "all_providers_failed", "message": self.message},
            "attempts": [a.to_dict() for a in self.attempts],
        }
