"""Redaction of API keys and tokens before text reaches callers or logs."""

from __future__ import annotations

import re
from typing import Iterable


class SensitiveOutputRedactor:
    """Redact secrets from provider error messages and diagnostics."""

    SECRET_PLACEHOLDER = "[REDACTED_SECRET]"

    _KV_SECRET_RE = re.compile(
        r'(?i)(["\']?(?:api[_-]?key|apikey|key|token|secret|password|authorization)["\']?\s*[:=]\s*["\']?)([^"\'\s,}\]&]+)'
    )
    _BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._~+/=\-]{8,}\b")
    _GENERIC_SK_RE = re.compile(r"\bsk-[A-Za-z0-9._=\-]{8,}\b")

    def __init__(self, enabled: bool = True, extra_secrets: Iterable[str] | None = None):
        self.enabled = enabled
        self._literal_secrets: set[str] = set()
        self.add_secrets(extra_secrets)

    def add_secrets(self, values: Iterable[str] | None) -> None:
        if not values:
            return
        for raw in values:
            if not raw:
                continue
            value = str(raw).strip()
            if len(value) >= 6:
                self._literal_secrets.add(value)

    def redact(self, text: str) -> str:
        """Redact sensitive values from text."""
        if not self.enabled or not text:
            return text

        sanitized = text
        for value in sorted(self._literal_secrets, key=len, reverse=True):
            sanitized = sanitized.replace(value, self.SECRET_PLACEHOLDER)

        sanitized = self._KV_SECRET_RE.sub(rf"\1{self.SECRET_PLACEHOLDER}", sanitized)
        sanitized = self._BEARER_RE.sub(f"Bearer {self.SECRET_PLACEHOLDER}", sanitized)
        sanitized = self._GENERIC_SK_RE.sub(self.SECRET_PLACEHOLDER, sanitized)
        return sanitized
