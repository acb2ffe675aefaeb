"""Layered record extraction: declared selectors, repeated structure, then raw text."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from bs4 import BeautifulSoup, Tag
from loguru import logger
from soupsieve import SelectorSyntaxError

from scoutbot.agent.tools.browser.analyzer import clean_text, median_length, parse_html, repeated_sibling_groups
from scoutbot.agent.tools.browser.launcher import classify_navigation_error
from scoutbot.agent.tools.browser.session import ExtractionStep
from scoutbot.errors import ExtractionError, ValidationError
from scoutbot.utils.urls import absolutize, host_of

if TYPE_CHECKING:
    from scoutbot.agent.tools.browser.analyzer import PageDigest
    from scoutbot.agent.tools.browser.session import Session, SessionRegistry

ExtractionMethod = Literal["selector", "heuristic", "heuristic-text"]

BASE_FIELDS = ("name", "link", "description")
TEXT_FIELDS = ("name", "link", "label", "value")

# Extra fields, in output order, and the instruction words that request them.
FIELD_KEYWORDS: dict[str, tuple[str, ...]] = {
    "website": ("website", "websites", "site", "sites", "url", "urls", "domain", "web"),
    "email": ("email", "emails", "e-mail", "mail", "contact", "contacts"),
    "phone": ("phone", "phones", "telephone", "tel", "mobile", "contact", "contacts"),
    "price": ("price", "prices", "pricing", "cost", "costs", "prix", "tarif"),
    "image": ("image", "images", "logo", "logos", "photo", "photos", "picture"),
}

KEYWORD_SELECTORS: dict[str, tuple[str, ...]] = {
    "company": (
        ".partner-card", ".company-card", ".exhibitor-card", ".startup-card",
        ".partner-item", ".company-item", "[data-partner]", "[data-company]",
        ".partner", ".company", ".exhibitor", ".sponsor", ".startup", ".member",
    ),
    "product": (".product-card", ".product-item", ".product", "[data-product]", '[itemtype*="Product"]'),
    "job": (".job-card", ".job-listing", ".job", ".posting", '[class*="job-"]'),
    "news": (".news-item", ".post", ".article", "article", '[class*="news"]'),
    "contact": (".vcard", ".contact-card", ".contact", '[class*="contact"]'),
    "people": (".team-member", ".speaker", ".person", ".profile-card", '[class*="member"]'),
    "event": (".event-card", ".event", '[class*="event"]'),
}
KEYWORD_ALIASES: dict[str, str] = {
    "company": "company", "companies": "company", "partner": "company", "partners": "company",
    "exhibitor": "company", "exhibitors": "company", "startup": "company", "startups": "company",
    "sponsor": "company", "sponsors": "company", "brand": "company", "brands": "company",
    "entreprise": "company", "entreprises": "company",
    "product": "product", "products": "product", "price": "product", "prices": "product",
    "shop": "product", "catalog": "product",
    "job": "job", "jobs": "job", "career": "job", "careers": "job", "vacancy": "job", "offers": "job",
    "news": "news", "article": "news", "articles": "news", "post": "news", "posts": "news", "blog": "news",
    "contact": "contact", "contacts": "contact", "email": "contact", "phone": "contact",
    "team": "people", "people": "people", "speaker": "people", "speakers": "people", "member": "people",
    "members": "people",
    "event": "event", "events": "event",
}
GENERIC_SELECTORS = (".card", ".grid-item", ".item", ".listing", ".entry", "article")

NAME_SELECTORS = (
    "h1", "h2", "h3", "h4", "h5", ".name", ".title", ".company-name", ".partner-name",
    '[itemprop="name"]', "strong", "b",
)
DESCRIPTION_SELECTORS = (".description", ".summary", ".bio", ".excerpt", '[itemprop="description"]', "p")

SOCIAL_DOMAINS = (
    "facebook.com", "twitter.com", "x.com", "linkedin.com", "instagram.com",
    "youtube.com", "tiktok.com", "pinterest.com", "t.me", "wa.me",
)

PRICE_RE = re.compile(r"[\$€£¥₹]\s?\d[\d,.]*(?: ?[A-Za-z]+)?|\d+[.,]\d+\s*[\$€£¥₹]")
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"\+?[1-9]?[\d\s\-().]{8,15}\d")
URL_RE = re.compile(r"https?://[^\s<>\"')\]]+")
LABEL_RE = re.compile(r"^([A-Z][\w .'/&-]{1,40}?)\s*:\s*(\S.{0,300})$")
CAPITALIZED_NAME_RE = re.compile(
    r"\b([A-Z][\w&'.-]*[A-Za-z0-9](?:\s+(?:[A-Z][\w&'.-]*|&|de|of|and|du|la)){1,4})\b"
)
_BACKTICK_RE = re.compile(r"`([^`]+)`")
_BARE_SELECTOR_RE = re.compile(
    r"(?<![\w/.@-])((?:div|li|ul|ol|a|p|span|section|article|aside|main|table|tr|td|h[1-6])?"
    r"[.#][A-Za-z_][\w-]*(?:[.#][A-Za-z_][\w-]*)*(?:\[[^\]]+\])?)"
)

_WORD_RE = re.compile(r"[a-zà-ÿ-]+")

_INVALID_NAME_RES = (
    re.compile(r"^(the|a|an|and|or|but|in|on|at|to|for|of|with|by)$"),
    re.compile(r"^(home|about|contact|services|products|news|blog)$"),
    re.compile(r"^(click|here|more|read|see|view|learn|discover)$"),
    re.compile(r"^(skip to|main|content|navigation|menu|search)$"),
    re.compile(r"^[0-9\s\-+.]+$"),
    re.compile(r"^[^\w\s]+$"),
    re.compile(r"^(privacy|policy|terms|conditions|cookies)$"),
)
_FALSE_POSITIVE_NAMES = frozenset(
    {
        "privacy policy", "terms of service", "cookie", "cookies", "login", "log in", "register",
        "sign in", "sign up", "skip to main content", "main content", "more info", "learn more",
        "read more", "click here", "see more", "see all", "view all", "skip", "legal", "press",
        "faq", "help", "support", "info", "tel", "phone", "email", "settings", "preferences",
        "share", "follow", "twitter", "facebook", "linkedin", "instagram", "youtube",
        "next", "previous", "back to top",
    }
)


@dataclass(slots=True)
class ExtractionResult:
    records: list[dict[str, str]]
    method: ExtractionMethod
    total_found: int
    diagnostics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": self.records,
            "method": self.method,
            "totalFound": self.total_found,
            "diagnostics": self.diagnostics,
        }


def is_valid_name(name: str) -> bool:
    """Reject navigation labels, stopwords and punctuation posing as record names."""
    cleaned = (name or "").strip().lower()
    if len(cleaned) < 2 or len(cleaned) >= 100:
        return False
    if cleaned in _FALSE_POSITIVE_NAMES:
        return False
    return not any(pattern.match(cleaned) for pattern in _INVALID_NAME_RES)


def plan_fields(instructions: str) -> tuple[str, ...]:
    words = set(_WORD_RE.findall(instructions.lower()))
    extras = [name for name, keywords in FIELD_KEYWORDS.items() if words.intersection(keywords)]
    return BASE_FIELDS + tuple(extras)


def selectors_from_instructions(instructions: str) -> list[str]:
    """CSS selectors written inline, e.g. ``use .partner-card`` or backticked."""
    found: list[str] = []
    candidates = [m.group(1) for m in _BACKTICK_RE.finditer(instructions)]
    bare = _BACKTICK_RE.sub(" ", instructions)
    candidates += [m.group(1) for m in _BARE_SELECTOR_RE.finditer(bare)]
    for candidate in candidates:
        selector = candidate.strip()
        if selector and selector not in found:
            found.append(selector)
    return found


def selectors_from_keywords(instructions: str) -> list[str]:
    words = _WORD_RE.findall(instructions.lower())
    selectors: list[str] = []
    for word in words:
        group = KEYWORD_ALIASES.get(word)
        if group is None:
            continue
        for selector in KEYWORD_SELECTORS[group]:
            if selector not in selectors:
                selectors.append(selector)
    return selectors


def candidate_selectors(
    instructions: str,
    selectors: Sequence[str] | None,
    digest: "PageDigest | None",
) -> list[tuple[str, int]]:
    """(selector, minimum matches) in trial order; explicit selectors accept one match."""
    ordered: list[tuple[str, int]] = []
    seen: set[str] = set()

    def add(items: Iterable[str], min_matches: int) -> None:
        for item in items:
            selector = (item or "").strip()
            if selector and selector not in seen:
                seen.add(selector)
                ordered.append((selector, min_matches))

    add(selectors or (), 1)
    add(selectors_from_instructions(instructions), 1)
    add(selectors_from_keywords(instructions), 2)
    if digest is not None:
        add((c.selector for c in digest.containers), 2)
    add(GENERIC_SELECTORS, 2)
    return ordered


def outermost(elements: Sequence[Tag]) -> list[Tag]:
    """Drop matches nested inside another match of the same selector."""
    ids = {id(element) for element in elements}
    return [element for element in elements if not any(id(parent) in ids for parent in element.parents)]


def record_from_element(element: Tag, fields: Sequence[str], page_url: str) -> dict[str, str]:
    """Read one record out of a container's child structure."""
    text = clean_text(element.get_text(" ", strip=True))
    name = _record_name(element)
    links = _element_links(element, page_url)
    page_host = host_of(page_url)

    values: dict[str, str] = {}
    for field_name in fields:
        if field_name == "name":
            values[field_name] = name
        elif field_name == "link":
            values[field_name] = links[0] if links else ""
        elif field_name == "description":
            values[field_name] = _record_description(element, name)
        elif field_name == "website":
            values[field_name] = next(
                (url for url in links if host_of(url) != page_host and not _is_social(url)),
                "",
            )
        elif field_name == "email":
            values[field_name] = _record_email(element, text)
        elif field_name == "phone":
            values[field_name] = _record_phone(element, text)
        elif field_name == "price":
            match = PRICE_RE.search(text)
            values[field_name] = match.group(0).strip() if match else ""
        elif field_name == "image":
            values[field_name] = _record_image(element, page_url)
        else:
            values[field_name] = ""
    return values


def finalize(records: Iterable[dict[str, str]], max_records: int) -> tuple[list[dict[str, str]], int]:
    """Drop all-empty records, dedupe by value tuple in first-seen order, cap."""
    unique: list[dict[str, str]] = []
    seen: set[tuple[str, ...]] = set()
    for record in records:
        key = tuple(record.values())
        if not any(key) or key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique[:max_records], len(unique)


def extract_records(
    html: str,
    *,
    instructions: str,
    page_url: str,
    selectors: Sequence[str] | None = None,
    digest: "PageDigest | None" = None,
    max_records: int = 50,
) -> ExtractionResult:
    """Run the selector, heuristic and text passes; the first pass with records wins."""
    soup = parse_html(html)
    fields = plan_fields(instructions)
    diagnostics: dict[str, Any] = {"fields": list(fields), "selectorsTried": [], "heuristicGroups": 0, "textBlocks": 0}

    result = _selector_pass(soup, instructions, selectors, digest, fields, page_url, max_records, diagnostics)
    if result is None:
        result = _heuristic_pass(soup, fields, page_url, max_records, diagnostics)
    if result is None:
        result = _text_pass(soup, page_url, max_records, diagnostics)
    if result is None:
        raise ExtractionError("No records could be extracted from the page", details=diagnostics)
    return result


def _selector_pass(
    soup: BeautifulSoup,
    instructions: str,
    selectors: Sequence[str] | None,
    digest: "PageDigest | None",
    fields: Sequence[str],
    page_url: str,
    max_records: int,
    diagnostics: dict[str, Any],
) -> ExtractionResult | None:
    for selector, min_matches in candidate_selectors(instructions, selectors, digest):
        try:
            elements = outermost(soup.select(selector))
        except SelectorSyntaxError as e:
            logger.debug("Skipping invalid selector {!r}: {}", selector, e)
            diagnostics["selectorsTried"].append({"selector": selector, "error": str(e)})
            continue

        diagnostics["selectorsTried"].append({"selector": selector, "matches": len(elements)})
        if len(elements) < min_matches:
            continue

        records = [record_from_element(el, fields, page_url) for el in elements]
        records, total = finalize((r for r in records if r["name"]), max_records)
        logger.debug("Selector {!r}: {} matches, {} records", selector, len(elements), total)
        if records:
            diagnostics["selector"] = selector
            return ExtractionResult(records=records, method="selector", total_found=total, diagnostics=diagnostics)
    return None


def _heuristic_pass(
    soup: BeautifulSoup,
    fields: Sequence[str],
    page_url: str,
    max_records: int,
    diagnostics: dict[str, Any],
) -> ExtractionResult | None:
    scored: list[tuple[float, str, list[Tag]]] = []
    for selector, members in repeated_sibling_groups(soup):
        if _in_chrome(members[0]):
            continue
        kept = _similar_length(members)
        if len(kept) < 3:
            continue
        linked = sum(1 for m in kept if m.find("a", href=True) is not None) / len(kept)
        scored.append((len(kept) * (1 + linked), selector, kept))

    diagnostics["heuristicGroups"] = len(scored)
    scored.sort(key=lambda item: item[0], reverse=True)
    for _, selector, members in scored:
        records, total = finalize(
            (r for r in (record_from_element(m, fields, page_url) for m in members) if r["name"]),
            max_records,
        )
        if records:
            diagnostics["group"] = selector
            return ExtractionResult(records=records, method="heuristic", total_found=total, diagnostics=diagnostics)
    return None


def _text_pass(
    soup: BeautifulSoup,
    page_url: str,
    max_records: int,
    diagnostics: dict[str, Any],
) -> ExtractionResult | None:
    root = soup.body or soup
    lines = [clean_text(line) for line in root.get_text("\n").splitlines()]
    lines = [line for line in lines if line]
    diagnostics["textBlocks"] = len(lines)

    candidates: list[dict[str, str]] = []
    for line in lines:
        label = LABEL_RE.match(line)
        if label and not URL_RE.match(label.group(2)):
            candidates.append({"name": "", "link": "", "label": label.group(1).strip(), "value": label.group(2).strip()})
            continue
        for match in CAPITALIZED_NAME_RE.finditer(line):
            name = match.group(1).strip()
            if is_valid_name(name):
                candidates.append({"name": name, "link": "", "label": "", "value": ""})
        for match in URL_RE.finditer(line):
            candidates.append({"name": "", "link": match.group(0).rstrip(".,;"), "label": "", "value": ""})

    records, total = finalize(candidates, max_records)
    if not records:
        return None
    return ExtractionResult(records=records, method="heuristic-text", total_found=total, diagnostics=diagnostics)


class ExtractionEngine:
    """Extract records from a session's page after scrolling it for lazy content."""

    def __init__(self, registry: "SessionRegistry"):
        self.registry = registry

    async def extract(
        self,
        session: "Session",
        instructions: str,
        selectors: Sequence[str] | None = None,
    ) -> ExtractionResult:
        instructions = (instructions or "").strip()
        if not instructions:
            raise ValidationError("instructions must not be empty")
        config = self.registry.config

        async with self.registry.activity(session):
            session.transition("extracting")
            if session.page is None:
                await self.registry.fail(session, "page_lost", "session has no page")
                raise ExtractionError(f"Session {session.id} lost its page", details={"sessionId": session.id})
            try:
                await session.page.scroll(config.scroll_passes, config.scroll_delay_ms)
                snapshot = await session.page.snapshot()
            except Exception as e:
                kind = classify_navigation_error(e)
                await self.registry.fail(session, kind, f"page read failed: {e}")
                raise ExtractionError(
                    f"Could not read page for session {session.id}: {e}",
                    details={"sessionId": session.id, "kind": kind},
                ) from e

            result = extract_records(
                snapshot.html,
                instructions=instructions,
                page_url=snapshot.url or session.target_url,
                selectors=selectors,
                digest=session.digest,
                max_records=config.max_records,
            )
            session.history.append(
                ExtractionStep(
                    step=len(session.history) + 1,
                    instructions=instructions,
                    method=result.method,
                    records_found=result.total_found,
                    at=session.last_activity_at,
                )
            )

        logger.info(
            "Session {} extracted {} records via {}",
            session.id,
            len(result.records),
            result.method,
        )
        return result


def _record_name(element: Tag) -> str:
    for selector in NAME_SELECTORS:
        found = element.select_one(selector)
        if found is None:
            continue
        name = clean_text(found.get_text(" ", strip=True))
        if is_valid_name(name):
            return name[:200]
    image = element.find("img", alt=True)
    if image is not None and is_valid_name(image["alt"]):
        return clean_text(image["alt"])[:200]
    if element.name == "a" or element.find(True) is None:
        own = clean_text(element.get_text(" ", strip=True))
        if is_valid_name(own):
            return own[:200]
    return ""


def _record_description(element: Tag, name: str) -> str:
    for selector in DESCRIPTION_SELECTORS:
        found = element.select_one(selector)
        if found is None:
            continue
        text = clean_text(found.get_text(" ", strip=True))
        if text and text != name:
            return text[:500]
    return ""


def _element_links(element: Tag, page_url: str) -> list[str]:
    anchors = [element] if element.name == "a" and element.get("href") else []
    anchors += element.find_all("a", href=True)
    urls: list[str] = []
    for anchor in anchors:
        href = str(anchor["href"]).strip()
        if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
            continue
        url = absolutize(href, page_url)
        if url not in urls:
            urls.append(url)
    return urls


def _record_email(element: Tag, text: str) -> str:
    mailto = element.select_one('a[href^="mailto:"]')
    if mailto is not None:
        return str(mailto["href"])[len("mailto:"):].split("?")[0]
    match = EMAIL_RE.search(text)
    return match.group(0) if match else ""


def _record_phone(element: Tag, text: str) -> str:
    tel = element.select_one('a[href^="tel:"]')
    if tel is not None:
        return str(tel["href"])[len("tel:"):].strip()
    for match in PHONE_RE.finditer(text):
        candidate = match.group(0).strip()
        if sum(ch.isdigit() for ch in candidate) >= 8:
            return candidate
    return ""


def _record_image(element: Tag, page_url: str) -> str:
    image = element if element.name == "img" else element.find("img")
    if image is None:
        return ""
    src = image.get("src") or image.get("data-src") or ""
    return absolutize(str(src), page_url) if src and not str(src).startswith("data:") else ""


def _is_social(url: str) -> bool:
    host = host_of(url)
    return any(host == domain or host.endswith("." + domain) for domain in SOCIAL_DOMAINS)


def _in_chrome(element: Tag) -> bool:
    return any(parent.name in ("nav", "header", "footer") for parent in element.parents)


def _similar_length(members: list[Tag]) -> list[Tag]:
    texts = [clean_text(m.get_text(" ", strip=True)) for m in members]
    median = median_length(texts)
    if median == 0:
        return []
    return [m for m, t in zip(members, texts) if 0.25 * median <= len(t) <= 4 * median]
