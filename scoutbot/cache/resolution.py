"""In-memory key -> identifier cache shared across requests."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


def normalize_key(key: str) -> str:
    """Cache keys are stripped and upper-cased so ``aapl`` and ``AAPL`` collide."""
    if not isinstance(key, str):
        raise ValueError("cache key must be a string")
    normalized = key.strip().upper()
    if not normalized:
        raise ValueError("cache key must not be empty")
    return normalized


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: str
    label: str = ""
    inserted_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "label": self.label,
            "insertedAt": self.inserted_at,
        }


class ResolutionCache:
    """Thread-safe mapping of case-normalized keys to resolved values.

    Entries never expire. Enumeration follows first insertion; overwriting a
    key replaces its value in place.
    """

    def __init__(self, preload: Mapping[str, Any] | None = None):
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        if preload:
            self.preload(preload)

    def put(self, key: str, value: str, label: str = "") -> CacheEntry:
        normalized = normalize_key(key)
        entry = CacheEntry(
            key=normalized,
            value=str(value),
            label=str(label or ""),
            inserted_at=datetime.now().isoformat(timespec="seconds"),
        )
        with self._lock:
            self._entries[normalized] = entry
        return entry

    def get(self, key: str) -> CacheEntry | None:
        try:
            normalized = normalize_key(key)
        except ValueError:
            return None
        with self._lock:
            return self._entries.get(normalized)

    def value_of(self, key: str) -> str | None:
        entry = self.get(key)
        return entry.value if entry else None

    def all(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def stats(self) -> dict[str, Any]:
        with self._lock:
            keys = list(self._entries)
        return {"size": len(keys), "keys": keys}

    def preload(self, mapping: Mapping[str, Any]) -> int:
        """Seed entries; values may be plain strings or ``{"value", "label"}`` objects."""
        count = 0
        for key, raw in mapping.items():
            if isinstance(raw, Mapping):
                value = raw.get("value")
                label = raw.get("label", "")
            else:
                value, label = raw, ""
            if value is None or str(value).strip() == "":
                continue
            self.put(key, str(value), str(label or ""))
            count += 1
        return count

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
