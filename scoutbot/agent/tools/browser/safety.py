"""Navigation and request guards for scraping sessions."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlsplit

_LOCAL_HOSTNAMES = {
    "localhost",
    "localhost.localdomain",
    "host.docker.internal",
    "metadata.google.internal",
}

# Sub-resources a rendered page may legitimately load without a network host.
_PASSIVE_SCHEMES = {"about", "blob", "data"}


def navigation_block_reason(
    url: str,
    *,
    allow_private_network: bool,
    block_file_scheme: bool,
) -> str | None:
    """Why a session must not open ``url``, or None when navigation is allowed."""
    parts = urlsplit(url)
    scheme = (parts.scheme or "").lower()

    if scheme == "file" and block_file_scheme:
        return "file:// URLs are blocked"
    if scheme not in {"http", "https"}:
        return f"Only http/https URLs are allowed, got '{scheme or 'none'}'"

    host = parts.hostname
    if not host:
        return "URL host is required"
    if not allow_private_network and is_private_or_local_host(host):
        return f"Private/local host blocked: {host}"
    return None


def request_block_reason(
    url: str,
    *,
    allow_private_network: bool,
    block_file_scheme: bool,
) -> str | None:
    """Same rules for sub-requests, plus passive schemes a page may use."""
    scheme = (urlsplit(url).scheme or "").lower()
    if scheme in _PASSIVE_SCHEMES:
        return None
    return navigation_block_reason(
        url,
        allow_private_network=allow_private_network,
        block_file_scheme=block_file_scheme,
    )


def is_private_or_local_host(host: str) -> bool:
    """Check whether a host is local/private based on hostname or literal IP."""
    normalized = host.strip("[]").rstrip(".").lower()

    if normalized in _LOCAL_HOSTNAMES or normalized.endswith((".local", ".internal", ".localhost")):
        return True

    try:
        ip = ipaddress.ip_address(normalized)
    except ValueError:
        return False

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )
