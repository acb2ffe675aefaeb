"""Error taxonomy shared by search, cache and scraping components."""

from __future__ import annotations

from typing import Any, Literal

NavigationFailureKind = Literal["timeout", "dns", "http_error", "blocked", "browser", "page_lost"]
ProviderOutcome = Literal["success", "empty", "timeout", "error"]


class ScoutError(Exception):
    """Base class for every classified failure crossing a component boundary."""

    code = "error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ScoutError, ValueError):
    """Caller input was rejected before any network action."""

    code = "invalid_input"


class InvalidUrlError(ValidationError):
    """A user-supplied URL could not be normalized into an http(s) URL."""

    code = "invalid_url"

    def __init__(self, raw: str, reason: str):
        super().__init__(f"Invalid URL '{raw}': {reason}", details={"url": raw, "reason": reason})
        self.raw = raw
        self.reason = reason


class NavigationError(ScoutError):
    """Opening or keeping a page alive failed; the owning session is failed."""

    code = "navigation_failed"

    def __init__(
        self,
        message: str,
        *,
        kind: NavigationFailureKind,
        url: str | None = None,
        session_id: str | None = None,
    ):
        details: dict[str, Any] = {"kind": kind}
        if url:
            details["url"] = url
        if session_id:
            details["sessionId"] = session_id
        super().__init__(message, details=details)
        self.kind = kind
        self.url = url
        self.session_id = session_id


class ProviderError(ScoutError):
    """A search provider call failed; drives the fallback chain."""

    code = "provider_error"
    outcome: ProviderOutcome = "error"

    def __init__(self, provider: str, message: str):
        super().__init__(message, details={"provider": provider})
        self.provider = provider


class ProviderTimeout(ProviderError):
    code = "provider_timeout"
    outcome: ProviderOutcome = "timeout"


class ProviderEmpty(ProviderError):
    code = "provider_empty"
    outcome: ProviderOutcome = "empty"


class AnalysisError(ScoutError):
    code = "analysis_failed"


class ExtractionError(ScoutError):
    """All extraction passes produced nothing; details carry what was tried."""

    code = "extraction_failed"


class SessionNotFound(ScoutError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", details={"sessionId": session_id})
        self.session_id = session_id


class SessionClosed(ScoutError):
    code = "session_closed"

    def __init__(self, session_id: str, status: str):
        super().__init__(
            f"Session {session_id} is {status}",
            details={"sessionId": session_id, "status": status},
        )
        self.session_id = session_id
        self.status = status
