import pytest

from scoutbot.agent.tools.browser.analyzer import PageAnalyzer
from scoutbot.agent.tools.browser.extraction import (
    ExtractionEngine,
    extract_records,
    is_valid_name,
    plan_fields,
    selectors_from_instructions,
)
from scoutbot.agent.tools.browser.session import SessionRegistry
from scoutbot.config.schema import BrowserToolConfig
from scoutbot.errors import ExtractionError

DIRECTORY_HTML = """
<html><body>
  <div id="directory">
    <ul>
      <li><strong>Alan</strong> <span>Health insurance for companies</span> <a href="https://alan.com">alan.com</a></li>
      <li><strong>Doctolib</strong> <span>Medical appointments online</span> <a href="https://doctolib.fr">doctolib.fr</a></li>
      <li><strong>Qonto</strong> <span>Business banking for small firms</span> <a href="https://qonto.com">qonto.com</a></li>
    </ul>
  </div>
</body></html>
"""

PRODUCTS_HTML = """
<html><body>
  <div class="product-card"><h2>Smart Lamp</h2><a href="mailto:sales@lamp.io">Email us</a><span class="price">€49.90</span></div>
  <div class="product-card"><h2>Desk Fan</h2><a href="mailto:sales@fan.io">Email us</a><span class="price">€19.00</span></div>
  <div class="sponsor-tile"><h4>Acme Corp</h4><p>Gold sponsor</p></div>
</body></html>
"""

PLAIN_HTML = """
<html><body>
  <div>
    <p>Contact: press@vivatech.com</p>
    <div>Organised by Publicis Groupe and Les Echos</div>
  </div>
</body></html>
"""


def test_plan_fields_follow_instructions() -> None:
    assert plan_fields("list companies") == ("name", "link", "description")
    assert plan_fields("list companies and websites") == ("name", "link", "description", "website")
    assert plan_fields("products with prices, logos and emails") == (
        "name",
        "link",
        "description",
        "email",
        "price",
        "image",
    )


def test_selectors_written_in_instructions() -> None:
    assert selectors_from_instructions("use `div.card > a` for vivatechnology.com") == ["div.card > a"]
    assert selectors_from_instructions("grab every .partner-card and #main li.item") == [".partner-card", "#main", "li.item"]
    assert selectors_from_instructions("e.g. list the partners.") == []


def test_name_validation_rejects_navigation_labels() -> None:
    assert is_valid_name("LVMH")
    assert is_valid_name("BNP Paribas")
    for bad in ("Home", "read more", "Privacy Policy", "+33 1 23 45", "...", "x", "LinkedIn"):
        assert not is_valid_name(bad), bad


def test_heuristic_pass_uses_repeated_siblings() -> None:
    result = extract_records(
        DIRECTORY_HTML,
        instructions="find the startups",
        page_url="https://example.com/directory",
    )

    assert result.method == "heuristic"
    assert [r["name"] for r in result.records] == ["Alan", "Doctolib", "Qonto"]
    assert result.records[0]["link"] == "https://alan.com"
    assert result.diagnostics["group"] == "ul > li"


def test_selector_pass_reads_requested_fields() -> None:
    result = extract_records(
        PRODUCTS_HTML,
        instructions="list products with prices and emails",
        page_url="https://shop.example/",
    )

    assert result.method == "selector"
    assert result.diagnostics["selector"] == ".product-card"
    assert result.records == [
        {"name": "Smart Lamp", "link": "", "description": "", "email": "sales@lamp.io", "price": "€49.90"},
        {"name": "Desk Fan", "link": "", "description": "", "email": "sales@fan.io", "price": "€19.00"},
    ]


def test_explicit_selector_accepts_single_match_and_skips_invalid_ones() -> None:
    result = extract_records(
        PRODUCTS_HTML,
        instructions="sponsors",
        page_url="https://shop.example/",
        selectors=["div[[[", ".sponsor-tile"],
    )

    assert result.method == "selector"
    assert result.records == [{"name": "Acme Corp", "link": "", "description": "Gold sponsor"}]
    tried = result.diagnostics["selectorsTried"]
    assert "error" in tried[0]
    assert tried[1] == {"selector": ".sponsor-tile", "matches": 1}


def test_text_pass_finds_labels_and_names() -> None:
    result = extract_records(PLAIN_HTML, instructions="who organises it", page_url="https://example.com/")

    assert result.method == "heuristic-text"
    assert {"name": "", "link": "", "label": "Contact", "value": "press@vivatech.com"} in result.records
    assert "Publicis Groupe and Les Echos" in [r["name"] for r in result.records]


def test_nothing_extractable_raises_with_diagnostics() -> None:
    with pytest.raises(ExtractionError) as exc_info:
        extract_records("<html><body><div></div></body></html>", instructions="list companies", page_url="https://e.com/")

    details = exc_info.value.details
    assert details["textBlocks"] == 0
    assert [t["selector"] for t in details["selectorsTried"]][:2] == [".partner-card", ".company-card"]


def test_records_are_capped_and_never_duplicated() -> None:
    cards = "".join(f'<div class="company-card"><h3>Company {i % 7}</h3></div>' for i in range(40))
    result = extract_records(
        f"<html><body>{cards}</body></html>",
        instructions="companies",
        page_url="https://e.com/",
        max_records=5,
    )

    tuples = [tuple(r.values()) for r in result.records]
    assert len(tuples) == len(set(tuples)) == 5
    assert result.total_found == 7


@pytest.mark.asyncio
async def test_engine_extracts_partners_and_records_history(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = SessionRegistry(launcher, BrowserToolConfig(), clock=clock)
    session = await registry.create("vivatechnology.com/partners")
    await PageAnalyzer(registry).analyze(session)

    result = await ExtractionEngine(registry).extract(session, "list companies and websites")

    assert result.method == "selector"
    assert [r["name"] for r in result.records] == ["LVMH", "Orange", "Google"]
    assert [r["website"] for r in result.records] == [
        "https://www.lvmh.com",
        "https://www.orange.com",
        "https://about.google",
    ]
    assert result.total_found == 3
    assert session.status == "extracting"
    assert session.extraction_count == 1
    assert session.history[0].records_found == 3
    assert launcher.pages[0].scrolls == 3


@pytest.mark.asyncio
async def test_engine_failure_keeps_session_alive(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = SessionRegistry(launcher, BrowserToolConfig(), clock=clock)
    session = await registry.create("vivatechnology.com/partners")
    launcher.sites["https://vivatechnology.com/partners"].html = "<html><body></body></html>"

    with pytest.raises(ExtractionError):
        await ExtractionEngine(registry).extract(session, "list companies")

    assert session.is_live
    assert session.extraction_count == 0


@pytest.mark.asyncio
async def test_engine_page_read_failure_fails_session(make_launcher, clock) -> None:
    launcher = make_launcher()
    registry = SessionRegistry(launcher, BrowserToolConfig(), clock=clock)
    session = await registry.create("vivatechnology.com/partners")
    launcher.pages[0].snapshot_error = RuntimeError("Target closed")

    with pytest.raises(ExtractionError) as exc_info:
        await ExtractionEngine(registry).extract(session, "list companies")

    assert exc_info.value.details["kind"] == "page_lost"
    assert session.status == "failed"
    assert session.page is None
