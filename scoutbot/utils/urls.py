"""URL canonicalization for user-supplied scrape targets."""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import quote, unquote, urljoin, urlsplit, urlunsplit

from scoutbot.errors import InvalidUrlError

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_DOUBLE_ENCODED_SPACE_RE = re.compile(r"%2520", re.IGNORECASE)
_HOST_LABELS_RE = re.compile(r"^(?:[\w-]+\.)*[\w-]+\.?$")

# RFC 3986 pchar minus the percent sign, which is re-added by quote() escapes.
_SEGMENT_SAFE = "!$&'()*+,;=:@~"
_QUERY_SAFE = "!$&'()*+,;=:@~/?%"

_ALLOWED_SCHEMES = {"http", "https"}


def normalize_url(raw: str) -> str:
    """Return the canonical http(s) form of ``raw`` or raise ``InvalidUrlError``.

    A missing scheme defaults to https, ``%2520`` (a space encoded twice) is
    collapsed to ``%20``, and every path segment is decoded once and
    re-encoded so existing escapes survive while raw characters get escaped.
    Applying the function to its own output returns the same string.
    """
    if not isinstance(raw, str):
        raise InvalidUrlError(str(raw), "URL must be a string")

    text = raw.strip()
    if not text:
        raise InvalidUrlError(raw, "URL must not be empty")

    if not _SCHEME_RE.match(text):
        text = f"https://{text}"

    text = _DOUBLE_ENCODED_SPACE_RE.sub("%20", text)

    parts = urlsplit(text)
    scheme = parts.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise InvalidUrlError(raw, f"unsupported scheme '{scheme}'")

    host = parts.hostname
    if not host:
        raise InvalidUrlError(raw, "host is required")
    if not _is_valid_host(host):
        raise InvalidUrlError(raw, f"invalid host '{host}'")

    try:
        parts.port
    except ValueError as e:
        raise InvalidUrlError(raw, f"invalid port ({e})") from None

    path = "/".join(_reencode_segment(segment) for segment in parts.path.split("/"))
    # A segment that decoded to a literal "%20" re-encodes as "%2520".
    path = _DOUBLE_ENCODED_SPACE_RE.sub("%20", path)
    if not path:
        path = "/"

    return urlunsplit(
        (
            scheme,
            _normalize_netloc(parts.netloc),
            path,
            quote(parts.query, safe=_QUERY_SAFE),
            quote(parts.fragment, safe=_QUERY_SAFE),
        )
    )


def is_valid_url(raw: str) -> bool:
    try:
        normalize_url(raw)
    except InvalidUrlError:
        return False
    return True


def absolutize(href: str, base_url: str) -> str:
    """Resolve a link found on a page against the page URL."""
    href = (href or "").strip()
    if not href:
        return ""
    if href.startswith("//"):
        return f"https:{href}"
    if href.lower().startswith("www."):
        return f"https://{href}"
    return urljoin(base_url, href)


def host_of(url: str) -> str:
    """Lowercased hostname without a leading ``www.``."""
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _reencode_segment(segment: str) -> str:
    if not segment:
        return segment
    return quote(unquote(segment), safe=_SEGMENT_SAFE)


def _normalize_netloc(netloc: str) -> str:
    userinfo, sep, hostport = netloc.rpartition("@")
    return f"{userinfo}{sep}{hostport.lower()}"


def _is_valid_host(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass
    return bool(_HOST_LABELS_RE.fullmatch(host))
