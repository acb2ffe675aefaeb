"""Scraping sessions: one live page each, explicit lifecycle, idle eviction."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

from scoutbot.agent.tools.browser.analyzer import detect_block
from scoutbot.agent.tools.browser.launcher import Launcher, PageHandle, classify_navigation_error
from scoutbot.agent.tools.browser.safety import navigation_block_reason
from scoutbot.errors import (
    NavigationError,
    NavigationFailureKind,
    SessionClosed,
    SessionNotFound,
    ValidationError,
)
from scoutbot.utils.urls import normalize_url

if TYPE_CHECKING:
    from scoutbot.agent.tools.browser.analyzer import PageDigest
    from scoutbot.config.schema import BrowserToolConfig

SessionStatus = Literal["created", "analyzed", "extracting", "closed", "failed"]

LIVE_STATUSES: frozenset[str] = frozenset({"created", "analyzed", "extracting"})

_TRANSITIONS: dict[str, frozenset[str]] = {
    "created": frozenset({"analyzed", "extracting", "closed", "failed"}),
    "analyzed": frozenset({"analyzed", "extracting", "closed", "failed"}),
    "extracting": frozenset({"extracting", "closed", "failed"}),
    "closed": frozenset(),
    "failed": frozenset(),
}


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts).isoformat(timespec="seconds")


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class ExtractionStep:
    """One extract call recorded on the session."""

    step: int
    instructions: str
    method: str
    records_found: int
    at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "instructions": self.instructions,
            "method": self.method,
            "recordsFound": self.records_found,
            "at": _iso(self.at),
        }


@dataclass(slots=True)
class Session:
    id: str
    target_url: str
    status: SessionStatus = "created"
    created_at: float = 0.0
    last_activity_at: float = 0.0
    page: PageHandle | None = field(default=None, repr=False)
    final_url: str = ""
    title: str = ""
    failure_kind: str = ""
    failure_reason: str = ""
    closed_at: float | None = None
    digest: "PageDigest | None" = field(default=None, repr=False)
    history: list[ExtractionStep] = field(default_factory=list)
    in_flight: int = 0

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def extraction_count(self) -> int:
        return len(self.history)

    def transition(self, target: SessionStatus) -> None:
        """Move to ``target``; terminal sessions raise ``SessionClosed``."""
        if target in _TRANSITIONS[self.status]:
            self.status = target
            return
        if not self.is_live:
            raise SessionClosed(self.id, self.status)
        raise ValidationError(
            f"Session {self.id} cannot move from {self.status} to {target}",
            details={"sessionId": self.id, "status": self.status, "target": target},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sessionId": self.id,
            "targetUrl": self.target_url,
            "finalUrl": self.final_url or None,
            "title": self.title or None,
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "lastActivityAt": _iso(self.last_activity_at),
            "closedAt": _iso(self.closed_at),
            "extractionCount": self.extraction_count,
            "analyzed": self.digest is not None,
            "history": [step.to_dict() for step in self.history],
        }
        if self.status == "failed":
            payload["failure"] = {"kind": self.failure_kind, "reason": self.failure_reason}
        return payload


class SessionRegistry:
    """Owns every scraping session and the page inside it.

    The map lock is held only while the dict is mutated, never across page
    I/O. Terminal sessions stay queryable for ``closed_retention_s`` so late
    callers get ``SessionClosed`` rather than ``SessionNotFound``.
    """

    def __init__(
        self,
        launcher: Launcher,
        config: "BrowserToolConfig | None" = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        from scoutbot.config.schema import BrowserToolConfig

        self.launcher = launcher
        self.config = config or BrowserToolConfig()
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None

    async def create(self, raw_url: str) -> Session:
        """Normalize ``raw_url``, open a page and navigate to it.

        Navigation failures leave the session ``failed`` (page released) and
        raise ``NavigationError`` carrying the session id.
        """
        url = normalize_url(raw_url)
        reason = navigation_block_reason(
            url,
            allow_private_network=self.config.allow_private_network,
            block_file_scheme=self.config.block_file_scheme,
        )
        if reason:
            raise ValidationError(reason, details={"url": url})

        now = self._clock()
        session = Session(id=new_session_id(), target_url=url, created_at=now, last_activity_at=now)
        async with self._lock:
            self._sessions[session.id] = session
        logger.info("Session {} created for {}", session.id, url)

        session.in_flight += 1
        try:
            await self._open(session)
        except NavigationError as e:
            await self.fail(session, e.kind, e.message)
            raise
        except asyncio.CancelledError:
            await self.fail(session, "browser", "navigation cancelled")
            raise
        except Exception as e:
            kind = classify_navigation_error(e)
            await self.fail(session, kind, str(e))
            raise NavigationError(
                f"Navigation to {url} failed ({kind}): {e}",
                kind=kind,
                url=url,
                session_id=session.id,
            ) from e
        finally:
            session.in_flight -= 1
            session.last_activity_at = self._clock()
        return session

    async def _open(self, session: Session) -> None:
        session.page = await self.launcher.open_page()
        status = await session.page.goto(
            session.target_url,
            wait_until=self.config.wait_until,
            timeout_ms=self.config.timeout_ms,
        )
        if status is not None and status >= 400:
            raise NavigationError(
                f"HTTP {status} from {session.target_url}",
                kind="http_error",
                url=session.target_url,
                session_id=session.id,
            )

        snapshot = await session.page.snapshot()
        session.final_url = snapshot.url
        session.title = snapshot.title

        signal = detect_block(snapshot, self.config)
        if signal:
            raise NavigationError(
                f"Anti-bot page detected at {snapshot.url}: {signal}",
                kind="blocked",
                url=session.target_url,
                session_id=session.id,
            )

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def require_live(self, session_id: str) -> Session:
        session = self.get(session_id)
        if not session.is_live:
            raise SessionClosed(session_id, session.status)
        return session

    def list(self) -> list[Session]:
        return list(self._sessions.values())

    def stats(self) -> dict[str, Any]:
        counts: dict[str, int] = {status: 0 for status in _TRANSITIONS}
        for session in self._sessions.values():
            counts[session.status] += 1
        return {
            "total": len(self._sessions),
            "live": sum(counts[s] for s in LIVE_STATUSES),
            "byStatus": counts,
        }

    async def cleanup(self, session_id: str) -> Session:
        """Release the page and mark the session closed; no-op on terminal sessions."""
        session = self.get(session_id)
        if not session.is_live:
            return session
        session.transition("closed")
        session.closed_at = self._clock()
        await self._release_page(session)
        logger.info("Session {} closed", session_id)
        return session

    async def fail(self, session: Session, kind: NavigationFailureKind | str, reason: str) -> None:
        """Mark a live session failed and release its page."""
        if session.is_live:
            session.transition("failed")
            session.failure_kind = kind
            session.failure_reason = reason
            session.closed_at = self._clock()
            logger.warning("Session {} failed ({}): {}", session.id, kind, reason)
        await self._release_page(session)

    @asynccontextmanager
    async def activity(self, session: Session) -> AsyncIterator[Session]:
        """Mark an operation in flight so the idle sweep leaves the session alone."""
        if not session.is_live:
            raise SessionClosed(session.id, session.status)
        session.in_flight += 1
        session.last_activity_at = self._clock()
        try:
            yield session
        finally:
            session.in_flight -= 1
            session.last_activity_at = self._clock()

    async def sweep_idle(self) -> dict[str, list[str]]:
        """Close idle live sessions and forget terminal ones past retention."""
        now = self._clock()
        idle = [
            s
            for s in list(self._sessions.values())
            if s.is_live and s.in_flight == 0 and now - s.last_activity_at > self.config.idle_timeout_s
        ]
        closed: list[str] = []
        for session in idle:
            logger.info(
                "Session {} idle for {:.0f}s, closing",
                session.id,
                now - session.last_activity_at,
            )
            await self.cleanup(session.id)
            closed.append(session.id)

        expired = [
            s.id
            for s in self._sessions.values()
            if not s.is_live and s.closed_at is not None and now - s.closed_at > self.config.closed_retention_s
        ]
        if expired:
            async with self._lock:
                for session_id in expired:
                    self._sessions.pop(session_id, None)
        return {"closed": closed, "forgotten": expired}

    async def close_all(self) -> int:
        """Close every live session; used on shutdown."""
        live = [s.id for s in self._sessions.values() if s.is_live]
        for session_id in live:
            await self.cleanup(session_id)
        return len(live)

    async def start(self) -> None:
        """Start the background idle sweep."""
        if self._running:
            logger.warning("Session sweep already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Session sweep started (every {}s)", self.config.sweep_interval_s)

    def stop(self) -> None:
        """Stop the background idle sweep."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.config.sweep_interval_s)
                if self._running:
                    await self.sweep_idle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Session sweep error: {}", e)

    async def _release_page(self, session: Session) -> None:
        page, session.page = session.page, None
        if page is None:
            return
        try:
            await page.close()
        except Exception as e:
            logger.warning("Closing page for session {} failed: {}", session.id, e)
