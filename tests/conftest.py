from dataclasses import dataclass

import pytest

from scoutbot.agent.tools.browser.launcher import Launcher, PageHandle, PageSnapshot

VIVATECH_PARTNERS_HTML = """
<html>
<head>
  <title>Partners | VivaTech</title>
  <meta name="description" content="Meet the partners of VivaTech, Europe's biggest startup and tech event.">
</head>
<body>
  <header>
    <nav>
      <a href="/">Home</a>
      <a href="/about">About</a>
      <a href="/partners">Partners</a>
      <a href="/contact">Contact</a>
    </nav>
  </header>
  <main>
    <h1>Our partners</h1>
    <p>VivaTech brings together startups, tech leaders and partner companies from all over
    the world. Meet the organizations that make the event possible every year in Paris,
    from founding partners to the startups exhibiting in the innovation labs.</p>
    <div class="partners-grid">
      <div class="partner-card">
        <img src="/logos/lvmh.png" alt="LVMH logo">
        <h3>LVMH</h3>
        <p class="description">Founding partner and world leader in luxury.</p>
        <a href="https://www.linkedin.com/company/lvmh">LinkedIn</a>
        <a href="https://www.lvmh.com">Website</a>
      </div>
      <div class="partner-card">
        <img src="/logos/orange.png" alt="Orange logo">
        <h3>Orange</h3>
        <p class="description">Telecommunications operator and digital services provider.</p>
        <a href="https://www.orange.com">Website</a>
      </div>
      <div class="partner-card">
        <img src="/logos/google.png" alt="Google logo">
        <h3>Google</h3>
        <p class="description">Search, cloud and artificial intelligence.</p>
        <a href="https://about.google">Website</a>
      </div>
      <div class="partner-card">
        <img src="/logos/orange.png" alt="Orange logo">
        <h3>Orange</h3>
        <p class="description">Telecommunications operator and digital services provider.</p>
        <a href="https://www.orange.com">Website</a>
      </div>
    </div>
  </main>
  <footer>
    <a href="/privacy">Privacy policy</a>
    <a href="mailto:partners@vivatechnology.com">partners@vivatechnology.com</a>
  </footer>
</body>
</html>
"""

CHALLENGE_HTML = """
<html><head><title>Just a moment...</title></head>
<body><p>Checking your browser before accessing the site.</p></body></html>
"""


@dataclass
class FakeSite:
    html: str
    title: str = ""
    status: int | None = 200
    final_url: str = ""


class FakePage(PageHandle):
    def __init__(self, sites: dict[str, FakeSite], *, goto_error=None, snapshot_error=None):
        self.sites = sites
        self.goto_error = goto_error
        self.snapshot_error = snapshot_error
        self.url = ""
        self.visited: list[str] = []
        self.scrolls = 0
        self.closed = False

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> int | None:
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        site = self.sites.get(url)
        return site.status if site else 404

    async def snapshot(self) -> PageSnapshot:
        if self.snapshot_error is not None:
            raise self.snapshot_error
        site = self.sites.get(self.url, FakeSite(html=""))
        return PageSnapshot(url=site.final_url or self.url, title=site.title, html=site.html)

    async def scroll(self, passes: int, delay_ms: int) -> None:
        self.scrolls += passes

    async def close(self) -> None:
        self.closed = True


class FakeLauncher(Launcher):
    def __init__(self, sites: dict[str, FakeSite] | None = None, **page_errors):
        self.sites = sites or {}
        self.page_errors = page_errors
        self.pages: list[FakePage] = []
        self.closed = False

    async def open_page(self) -> FakePage:
        page = FakePage(self.sites, **self.page_errors)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def vivatech_site() -> dict[str, FakeSite]:
    return {
        "https://vivatechnology.com/partners": FakeSite(
            html=VIVATECH_PARTNERS_HTML,
            title="Partners | VivaTech",
        ),
        "https://blocked.example/": FakeSite(html=CHALLENGE_HTML, title="Just a moment..."),
        "https://missing.example/": FakeSite(html="<html><body>Not found</body></html>", status=404),
    }


@pytest.fixture
def make_launcher(vivatech_site):
    def factory(**page_errors) -> FakeLauncher:
        return FakeLauncher(vivatech_site, **page_errors)

    return factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vivatech_html() -> str:
    return VIVATECH_PARTNERS_HTML
