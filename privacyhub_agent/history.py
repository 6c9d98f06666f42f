from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from urllib.parse import urlparse

from .models import AnalysisResult, HistoryEntry, HistoryStats
from .rubric import CATEGORY_KEYS

_COMMON_WORDS = {"privacy", "policy", "legal", "terms", "conditions", "of", "and", "the", "notice", "statement"}


def extract_brand_name(title: str, url: str) -> str:
    """Brand from the page title ("Acme - Privacy Policy" -> "Acme"), else the domain label."""
    first = next((part.strip() for part in re.split(r"[-|–—:]", title or "") if part.strip()), "")
    words = [w for w in first.split() if w.lower() not in _COMMON_WORDS]
    brand = " ".join(words)

    if len(brand) < 2:
        host = (urlparse(url).hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        label = host.split(".")[0] if host else ""
        brand = " ".join(w for w in label.split("-") if w and w not in _COMMON_WORDS)

    if not brand:
        return title or url
    return " ".join(w[:1].upper() + w[1:] for w in brand.split())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HistoryStore:
    """In-process analysis history.

    Every ``add`` creates a new entry, even for a URL seen before; ``refresh``
    replaces the result of an existing entry in place.
    """

    def __init__(self, max_entries: int = 1000):
        self._entries: dict[int, HistoryEntry] = {}
        self._next_id = 1
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    async def add(self, result: AnalysisResult) -> HistoryEntry:
        async with self._lock:
            now = _now()
            entry = HistoryEntry(
                id=self._next_id,
                brand_name=extract_brand_name(result.title, result.url),
                url=result.url,
                created_at=now,
                updated_at=now,
                result=result,
            )
            self._entries[entry.id] = entry
            self._next_id += 1
            while len(self._entries) > self._max_entries:
                del self._entries[min(self._entries)]
            return entry

    async def refresh(self, entry_id: int, result: AnalysisResult) -> HistoryEntry | None:
        async with self._lock:
            existing = self._entries.get(entry_id)
            if existing is None:
                return None
            updated = existing.model_copy(
                update={
                    "result": result,
                    "brand_name": extract_brand_name(result.title, result.url),
                    "updated_at": _now(),
                }
            )
            self._entries[entry_id] = updated
            return updated

    async def get(self, entry_id: int) -> HistoryEntry | None:
        return self._entries.get(entry_id)

    async def delete(self, entry_id: int) -> bool:
        async with self._lock:
            return self._entries.pop(entry_id, None) is not None

    async def list(self, limit: int = 10, offset: int = 0) -> list[HistoryEntry]:
        ordered = sorted(self._entries.values(), key=lambda e: (e.updated_at, e.id), reverse=True)
        return ordered[offset : offset + limit]

    async def stats(self) -> HistoryStats:
        entries = list(self._entries.values())
        if not entries:
            return HistoryStats(total_analyses=0, average_score=0.0, category_averages={})
        average = sum(e.result.overall_score for e in entries) / len(entries)
        per_category: dict[str, float] = {}
        for key in CATEGORY_KEYS:
            values = [c.score for e in entries for c in e.result.categories if c.key == key]
            if values:
                per_category[key] = round(sum(values) / len(values), 2)
        return HistoryStats(
            total_analyses=len(entries),
            average_score=round(average, 2),
            category_averages=per_category,
        )
