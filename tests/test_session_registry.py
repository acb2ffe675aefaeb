import asyncio

import pytest

from scoutbot.agent.tools.browser.extraction import ExtractionEngine
from scoutbot.agent.tools.browser.session import SessionRegistry
from scoutbot.config.schema import BrowserToolConfig
from scoutbot.errors import NavigationError, SessionClosed, SessionNotFound, ValidationError


def _registry(launcher, clock, **config) -> SessionRegistry:
    return SessionRegistry(launcher, BrowserToolConfig(**config), clock=clock)


@pytest.mark.asyncio
async def test_create_normalizes_url_and_opens_page(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = _registry(launcher, clock)

    session = await registry.create("vivatechnology.com/partners")

    assert session.target_url == "https://vivatechnology.com/partners"
    assert session.status == "created"
    assert session.title == "Partners | VivaTech"
    assert session.page is launcher.pages[0]
    assert launcher.pages[0].visited == ["https://vivatechnology.com/partners"]
    assert registry.get(session.id) is session
    assert session.id.startswith("session_")


@pytest.mark.asyncio
async def test_private_network_targets_are_rejected_before_navigation(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = _registry(launcher, clock)

    with pytest.raises(ValidationError):
        await registry.create("http://127.0.0.1:8080/admin")
    assert launcher.pages == []
    assert registry.list() == []


@pytest.mark.asyncio
async def test_http_error_fails_session_and_releases_page(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = _registry(launcher, clock)

    with pytest.raises(NavigationError) as exc_info:
        await registry.create("missing.example")

    err = exc_info.value
    assert err.kind == "http_error"
    session = registry.get(err.details["sessionId"])
    assert session.status == "failed"
    assert session.failure_kind == "http_error"
    assert session.page is None
    assert launcher.pages[0].closed is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (asyncio.TimeoutError(), "timeout"),
        (RuntimeError("net::ERR_NAME_NOT_RESOLVED at https://nowhere.example/"), "dns"),
        (RuntimeError("Target page, context or browser has been closed"), "page_lost"),
        (RuntimeError("something else broke"), "browser"),
    ],
)
async def test_navigation_failures_are_classified(make_launcher, clock, error, kind) -> None:
    registry = _registry(make_launcher(goto_error=error), clock)

    with pytest.raises(NavigationError) as exc_info:
        await registry.create("https://nowhere.example/")

    assert exc_info.value.kind == kind
    session = registry.get(exc_info.value.details["sessionId"])
    assert session.status == "failed"
    assert session.page is None


@pytest.mark.asyncio
async def test_anti_bot_page_fails_as_blocked(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock)

    with pytest.raises(NavigationError) as exc_info:
        await registry.create("blocked.example")

    assert exc_info.value.kind == "blocked"
    assert registry.stats()["byStatus"]["failed"] == 1


@pytest.mark.asyncio
async def test_double_cleanup_succeeds(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = _registry(launcher, clock)
    session = await registry.create("vivatechnology.com/partners")

    first = await registry.cleanup(session.id)
    second = await registry.cleanup(session.id)

    assert first.status == second.status == "closed"
    assert session.page is None
    assert launcher.pages[0].closed is True
    with pytest.raises(SessionClosed):
        registry.require_live(session.id)


@pytest.mark.asyncio
async def test_unknown_session_raises_not_found(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock)
    with pytest.raises(SessionNotFound):
        registry.get("session_missing")
    with pytest.raises(SessionNotFound):
        await registry.cleanup("session_missing")


@pytest.mark.asyncio
async def test_idle_sweep_closes_session_and_extract_raises_closed(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock, idle_timeout_s=60, closed_retention_s=300)
    session = await registry.create("vivatechnology.com/partners")

    clock.advance(30)
    assert (await registry.sweep_idle())["closed"] == []

    clock.advance(61)
    swept = await registry.sweep_idle()
    assert swept["closed"] == [session.id]
    assert session.status == "closed"

    with pytest.raises(SessionClosed):
        await ExtractionEngine(registry).extract(session, "list companies")

    clock.advance(301)
    swept = await registry.sweep_idle()
    assert swept["forgotten"] == [session.id]
    with pytest.raises(SessionNotFound):
        registry.get(session.id)


@pytest.mark.asyncio
async def test_idle_sweep_skips_sessions_with_work_in_flight(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock, idle_timeout_s=60)
    session = await registry.create("vivatechnology.com/partners")

    async with registry.activity(session):
        clock.advance(120)
        assert (await registry.sweep_idle())["closed"] == []
        assert session.is_live

    assert session.last_activity_at == clock.now
    assert (await registry.sweep_idle())["closed"] == []


@pytest.mark.asyncio
async def test_close_all_and_stats(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock)
    await registry.create("vivatechnology.com/partners")
    await registry.create("https://vivatechnology.com/partners")

    assert registry.stats()["live"] == 2
    assert await registry.close_all() == 2
    stats = registry.stats()
    assert stats["live"] == 0
    assert stats["byStatus"]["closed"] == 2


@pytest.mark.asyncio
async def test_sweep_start_is_idempotent(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock, sweep_interval_s=3600)

    await registry.start()
    task = registry._task
    await registry.start()

    assert registry._task is task
    registry.stop()
    assert registry._task is None
    await asyncio.gather(task, return_exceptions=True)
    assert task.done()


@pytest.mark.asyncio
async def test_terminal_session_rejects_transitions(make_launcher, clock) -> None:
    registry = _registry(make_launcher(), clock)
    session = await registry.create("vivatechnology.com/partners")
    await registry.cleanup(session.id)

    with pytest.raises(SessionClosed):
        session.transition("analyzed")
    payload = session.to_dict()
    assert payload["status"] == "closed"
    assert payload["closedAt"] is not None
