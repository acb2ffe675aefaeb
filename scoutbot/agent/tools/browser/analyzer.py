"""Structural digest of a rendered page."""

from __future__ import annotations

import re
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup, Tag
from loguru import logger
from soupsieve import escape as css_escape

from scoutbot.agent.tools.browser.launcher import PageSnapshot, classify_navigation_error
from scoutbot.errors import AnalysisError
from scoutbot.utils.urls import absolutize, host_of

if TYPE_CHECKING:
    from scoutbot.agent.tools.browser.session import Session, SessionRegistry
    from scoutbot.config.schema import BrowserToolConfig

NON_CONTENT_TAGS = ("script", "style", "noscript", "template", "svg")

ELEMENT_TYPES: dict[str, str] = {
    "headings": "h1, h2, h3, h4, h5, h6",
    "links": "a[href]",
    "images": "img",
    "paragraphs": "p",
    "lists": "ul, ol",
    "tables": "table",
    "forms": "form",
    "buttons": "button, input[type=button], input[type=submit]",
    "cards": '.card, [class*="card"], .item, [class*="item"]',
    "containers": 'section, article, main, [class*="container"]',
}

CONTAINER_KEYWORDS = (
    "list", "grid", "item", "card", "listing", "partner", "company", "product",
    "result", "entry", "exhibitor", "startup", "directory", "catalog", "profile", "member",
)
ITEM_KEYWORDS = frozenset(
    {"item", "card", "listing", "partner", "company", "product", "result", "entry", "exhibitor", "startup", "profile", "member"}
)

PAGINATION_SELECTORS = (
    ".pagination", ".pager", ".page-nav", '[class*="pagination"]', 'a[href*="page"]', 'button[aria-label*="page"]',
)
LOADING_SELECTORS = (
    ".loading", ".spinner", ".loader", '[class*="loading"]', '[class*="spinner"]', '[class*="loader"]',
)
LIST_SELECTORS = (
    ".grid", ".list", ".directory", ".catalog", ".cards", '[class*="grid"]', '[class*="list"]', '[class*="directory"]',
)
ITEM_COUNT_SELECTORS = (
    ".partner-card", ".company-card", ".exhibitor-card", ".startup-card",
    '[data-testid*="partner"]', '[data-testid*="company"]', ".card", ".item", ".listing", ".entry",
)
COMPANY_TERMS = (
    "company", "startup", "partner", "exhibitor", "enterprise",
    "business", "corporation", "firm", "organization", "vendor",
)

CHALLENGE_TITLES = ("just a moment", "attention required", "access denied")
CHALLENGE_MARKERS = (
    "access denied", "blocked", "bot detected", "cloudflare",
    "checking your browser", "please wait", "verify you are human", "captcha",
)

_GENERIC_LINK_TERMS = ("home", "about", "contact", "login", "menu", "search")
_SKIP_HREFS = ("#", "javascript:")
_WS_RE = re.compile(r"\s+")


@dataclass(slots=True)
class ElementStat:
    count: int
    samples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "samples": self.samples}


@dataclass(slots=True)
class ContainerCandidate:
    selector: str
    count: int
    score: float
    sample: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "count": self.count, "score": self.score, "sample": self.sample}


@dataclass(slots=True)
class LinkInfo:
    url: str
    text: str
    type: str
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "text": self.text, "type": self.type, "priority": self.priority}


@dataclass(slots=True)
class PageDigest:
    url: str
    title: str
    description: str
    body_length: int
    total_elements: int
    element_types: dict[str, ElementStat]
    containers: list[ContainerCandidate]
    links: list[LinkInfo]
    has_pagination: bool = False
    has_loading_indicators: bool = False
    has_list_structure: bool = False
    has_company_indicators: bool = False
    estimated_item_count: int = 0
    blocked: bool = False
    block_reason: str = ""
    recommended_next_steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "bodyLength": self.body_length,
            "totalElements": self.total_elements,
            "elementTypes": {k: v.to_dict() for k, v in self.element_types.items()},
            "containers": [c.to_dict() for c in self.containers],
            "links": [link.to_dict() for link in self.links],
            "totalLinks": self.element_types["links"].count if "links" in self.element_types else len(self.links),
            "hasPagination": self.has_pagination,
            "hasLoadingIndicators": self.has_loading_indicators,
            "hasListStructure": self.has_list_structure,
            "hasCompanyIndicators": self.has_company_indicators,
            "estimatedItemCount": self.estimated_item_count,
            "blocked": self.blocked,
            "blockReason": self.block_reason or None,
            "recommendedNextSteps": self.recommended_next_steps,
        }


def clean_text(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def parse_html(html: str) -> BeautifulSoup:
    """Parse markup and drop nodes that never render as text."""
    soup = BeautifulSoup(html or "", "html.parser")
    for node in soup.find_all(NON_CONTENT_TAGS):
        node.decompose()
    return soup


def body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return clean_text(root.get_text(" ", strip=True))


def block_signal(
    *,
    title: str,
    text: str,
    link_chars: int,
    min_body_chars: int,
    max_link_ratio: float,
) -> str | None:
    """Return why a page looks like an anti-bot wall, or None.

    A challenge title always counts. Otherwise only thin pages qualify: under
    ``min_body_chars`` of text and either a challenge marker or mostly link
    text. An empty page with no links is not a block.
    """
    lowered_title = (title or "").lower()
    for marker in CHALLENGE_TITLES:
        if marker in lowered_title:
            return f"challenge title '{title}'"

    length = len(text)
    if length == 0 or length >= min_body_chars:
        return None

    lowered = text.lower()
    for marker in CHALLENGE_MARKERS:
        if marker in lowered:
            return f"challenge marker '{marker}' on a {length}-char page"
    if link_chars / length >= max_link_ratio:
        return f"{length}-char page made of {link_chars} chars of link text"
    return None


def detect_block(snapshot: PageSnapshot, config: "BrowserToolConfig") -> str | None:
    soup = parse_html(snapshot.html)
    return block_signal(
        title=snapshot.title,
        text=body_text(soup),
        link_chars=_link_chars(soup),
        min_body_chars=config.block_min_body_chars,
        max_link_ratio=config.block_max_link_ratio,
    )


def digest_from_html(html: str, *, url: str, title: str, config: "BrowserToolConfig") -> PageDigest:
    """Build a ``PageDigest`` from serialized DOM."""
    soup = parse_html(html)
    text = body_text(soup)
    if not title and soup.title:
        title = clean_text(soup.title.get_text())

    element_types = {name: _element_stat(soup, selector) for name, selector in ELEMENT_TYPES.items()}
    containers = rank_containers(soup)
    links = inventory_links(soup, url, config.max_links)

    has_pagination = _any_match(soup, PAGINATION_SELECTORS)
    has_loading = _any_match(soup, LOADING_SELECTORS)
    has_list = _any_match(soup, LIST_SELECTORS) or any(c.count >= 3 for c in containers)
    lowered = text.lower()
    has_company = any(term in lowered for term in COMPANY_TERMS)
    estimated = max(
        [len(soup.select(s)) for s in ITEM_COUNT_SELECTORS] + [c.count for c in containers[:1]],
        default=0,
    )

    reason = block_signal(
        title=title,
        text=text,
        link_chars=_link_chars(soup),
        min_body_chars=config.block_min_body_chars,
        max_link_ratio=config.block_max_link_ratio,
    )

    digest = PageDigest(
        url=url,
        title=title,
        description=_meta_description(soup),
        body_length=len(text),
        total_elements=len(soup.find_all(True)),
        element_types=element_types,
        containers=containers,
        links=links,
        has_pagination=has_pagination,
        has_loading_indicators=has_loading,
        has_list_structure=has_list,
        has_company_indicators=has_company,
        estimated_item_count=estimated,
        blocked=reason is not None,
        block_reason=reason or "",
    )
    digest.recommended_next_steps = recommend_next_steps(digest)
    return digest


def rank_containers(soup: BeautifulSoup, limit: int = 10) -> list[ContainerCandidate]:
    """Selectors likely to wrap repeated records, best first."""
    by_selector: dict[str, list[Tag]] = defaultdict(list)
    keyword_of: dict[str, str] = {}

    for element in soup.find_all(True):
        for token in _class_tokens(element):
            lowered = token.lower()
            keyword = next((k for k in CONTAINER_KEYWORDS if k in lowered), None)
            if keyword is None:
                continue
            selector = f"{element.name}.{css_escape(token)}"
            by_selector[selector].append(element)
            keyword_of.setdefault(selector, keyword)

    candidates: dict[str, ContainerCandidate] = {}
    for selector, elements in by_selector.items():
        count = len(elements)
        keyword = keyword_of[selector]
        if count < 2 and keyword in ITEM_KEYWORDS:
            continue
        score = float(count)
        if keyword in ITEM_KEYWORDS:
            score += count
        if any(el.find("a", href=True) for el in elements[:5]):
            score += 3
        candidates[selector] = ContainerCandidate(
            selector=selector,
            count=count,
            score=score,
            sample=clean_text(elements[0].get_text(" ", strip=True))[:120],
        )

    for selector, elements in repeated_sibling_groups(soup):
        if selector in candidates:
            candidates[selector].score += 2
            continue
        candidates[selector] = ContainerCandidate(
            selector=selector,
            count=len(elements),
            score=len(elements) + 2.0,
            sample=clean_text(elements[0].get_text(" ", strip=True))[:120],
        )

    ranked = sorted(candidates.values(), key=lambda c: c.score, reverse=True)
    return ranked[:limit]


def repeated_sibling_groups(soup: BeautifulSoup, min_size: int = 3) -> list[tuple[str, list[Tag]]]:
    """Groups of siblings sharing tag, classes and child tag sequence."""
    groups: list[tuple[str, list[Tag]]] = []
    for parent in soup.find_all(True):
        if parent.name in ("html", "head", "nav", "header", "footer"):
            continue
        buckets: dict[tuple, list[Tag]] = defaultdict(list)
        for child in parent.find_all(True, recursive=False):
            buckets[structural_signature(child)].append(child)
        for signature, members in buckets.items():
            if len(members) < min_size or not clean_text(members[0].get_text()):
                continue
            groups.append((_group_selector(parent, signature), members))
    return groups


def structural_signature(element: Tag) -> tuple:
    return (
        element.name,
        tuple(sorted(_class_tokens(element))),
        tuple(child.name for child in element.find_all(True, recursive=False)),
    )


def inventory_links(soup: BeautifulSoup, page_url: str, max_links: int) -> list[LinkInfo]:
    """Absolute links with type and priority, highest priority first."""
    page_host = host_of(page_url)
    links: list[LinkInfo] = []
    seen: set[str] = set()

    for anchor in soup.select("a[href]"):
        href = str(anchor.get("href", "")).strip()
        if not href or href.startswith(_SKIP_HREFS):
            continue
        text = clean_text(anchor.get_text(" ", strip=True)) or clean_text(anchor.get("title", "") or anchor.get("aria-label", ""))

        lowered_href = href.lower()
        if lowered_href.startswith("mailto:"):
            url, link_type, priority = href, "email", 5
        elif lowered_href.startswith("tel:"):
            url, link_type, priority = href, "phone", 5
        else:
            url = absolutize(href, page_url)
            link_type = "internal" if host_of(url) == page_host else "external"
            priority = link_priority(url, text, link_type)

        if url in seen:
            continue
        seen.add(url)
        links.append(LinkInfo(url=url, text=text[:100], type=link_type, priority=priority))

    links.sort(key=lambda link: link.priority, reverse=True)
    return links[:max_links]


def link_priority(url: str, text: str, link_type: str) -> int:
    lowered_url = url.lower()
    lowered_text = text.lower()
    if any(part in lowered_url for part in ("/partner", "/company", "/exhibitor", "/startup")):
        priority = 8
    elif any(part in lowered_url for part in ("/detail", "/profile", "/view/")) or "view details" in lowered_text:
        priority = 7
    elif any(part in lowered_text for part in ("next", "more", "page")) or "page=" in lowered_url:
        priority = 6
    elif link_type == "external":
        priority = 3
    else:
        priority = 2

    if any(term in lowered_text for term in _GENERIC_LINK_TERMS):
        priority = max(1, priority - 3)
    return priority


def recommend_next_steps(digest: PageDigest) -> list[str]:
    steps: list[str] = []
    if digest.blocked:
        steps.append("Page looks like an anti-bot challenge; retry later or open the site from another entry page")
    if digest.has_loading_indicators:
        steps.append("Wait for dynamic content to load")
        steps.append("Try scrolling to trigger lazy loading")
    if digest.has_pagination:
        steps.append("Consider navigating through pagination")
        steps.append("Extract links to additional pages")
    if digest.estimated_item_count > 20:
        steps.append("Page contains many potential records - extract systematically")
    elif digest.estimated_item_count == 0:
        steps.append("No obvious record containers - try text-based extraction")
        steps.append("Look for links to detail pages")
    total_links = digest.element_types["links"].count if "links" in digest.element_types else len(digest.links)
    if total_links > 100:
        steps.append("Many links found - filter for relevant detail pages")
    return steps


class PageAnalyzer:
    """Analyze a session's live page and store the digest on the session."""

    def __init__(self, registry: "SessionRegistry"):
        self.registry = registry

    async def analyze(self, session: "Session") -> PageDigest:
        async with self.registry.activity(session):
            if session.page is None:
                await self.registry.fail(session, "page_lost", "session has no page")
                raise AnalysisError(f"Session {session.id} lost its page", details={"sessionId": session.id})
            try:
                snapshot = await session.page.snapshot()
            except Exception as e:
                kind = classify_navigation_error(e)
                await self.registry.fail(session, kind, f"snapshot failed: {e}")
                raise AnalysisError(
                    f"Could not read page for session {session.id}: {e}",
                    details={"sessionId": session.id, "kind": kind},
                ) from e

            digest = digest_from_html(
                snapshot.html,
                url=snapshot.url or session.target_url,
                title=snapshot.title,
                config=self.registry.config,
            )
            session.digest = digest
            session.final_url = digest.url
            session.title = digest.title
            if session.status == "created":
                session.transition("analyzed")

        logger.info(
            "Session {} analyzed: {} chars, {} containers, {} links",
            session.id,
            digest.body_length,
            len(digest.containers),
            len(digest.links),
        )
        return digest


def _element_stat(soup: BeautifulSoup, selector: str) -> ElementStat:
    elements = soup.select(selector)
    samples: list[str] = []
    for element in elements:
        text = clean_text(element.get_text(" ", strip=True))
        if text:
            samples.append(text[:80])
        if len(samples) >= 3:
            break
    return ElementStat(count=len(elements), samples=samples)


def _any_match(soup: BeautifulSoup, selectors: tuple[str, ...]) -> bool:
    return any(soup.select_one(selector) is not None for selector in selectors)


def _meta_description(soup: BeautifulSoup) -> str:
    meta = soup.find("meta", attrs={"name": "description"}) or soup.find("meta", attrs={"property": "og:description"})
    return clean_text(meta.get("content", "")) if meta else ""


def _link_chars(soup: BeautifulSoup) -> int:
    return sum(len(clean_text(a.get_text(" ", strip=True))) for a in soup.find_all("a"))


def _class_tokens(element: Tag) -> list[str]:
    classes = element.get("class") or []
    return [c for c in classes if c]


def _group_selector(parent: Tag, signature: tuple) -> str:
    tag, classes, _ = signature
    if classes:
        return tag + "".join(f".{css_escape(c)}" for c in classes)
    if parent.get("id"):
        return f"#{css_escape(parent['id'])} > {tag}"
    parent_classes = _class_tokens(parent)
    if parent_classes:
        return f"{parent.name}.{css_escape(parent_classes[0])} > {tag}"
    return f"{parent.name} > {tag}"


def median_length(texts: list[str]) -> float:
    return statistics.median(len(t) for t in texts) if texts else 0.0
