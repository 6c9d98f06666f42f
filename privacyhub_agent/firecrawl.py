"""
Firecrawl scrape client.

Only the single-page scrape endpoint is used: the page is fetched and rendered
server-side and returned as main-content markdown.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://api.firecrawl.dev/v1"


class FirecrawlError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ScrapedDocument:
    markdown: str
    title: str | None
    source_url: str | None


def _document_from(body: dict[str, Any]) -> ScrapedDocument | None:
    text = body.get("markdown")
    if not isinstance(text, str) or not text:
        text = body.get("content")
    if not isinstance(text, str):
        return None
    metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
    title = metadata.get("title") if isinstance(metadata.get("title"), str) else None
    source = metadata.get("sourceURL") if isinstance(metadata.get("sourceURL"), str) else None
    return ScrapedDocument(markdown=text, title=title, source_url=source)


def parse_scrape_response(payload: Any) -> ScrapedDocument:
    """Accept either envelope the API has shipped.

    Shape A: ``{"success": true, "data": {"markdown": ..., "metadata": {...}}}``
    Shape B: ``{"markdown": ..., "metadata": {...}}``
    """
    if not isinstance(payload, dict):
        raise FirecrawlError("Unexpected response format from Firecrawl")

    data = payload.get("data")
    if isinstance(data, dict):
        if payload.get("success") is False:
            raise FirecrawlError(str(payload.get("error") or "Firecrawl reported failure"))
        doc = _document_from(data)
        if doc is not None:
            return doc
        raise FirecrawlError("Firecrawl data envelope carried no markdown")

    doc = _document_from(payload)
    if doc is not None:
        return doc
    raise FirecrawlError("Unexpected response format from Firecrawl")


class FirecrawlClient:
    """
    Usage:
        async with FirecrawlClient(api_key) as client:
            doc = await client.scrape("https://example.com/privacy")
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 15.0,
        base_url: str = BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            transport=transport,
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
        )

    async def __aenter__(self) -> FirecrawlClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def scrape(self, url: str, *, wait_for_ms: int = 2000) -> ScrapedDocument:
        payload = {
            "url": url,
            "formats": ["markdown"],
            "onlyMainContent": True,
            "waitFor": wait_for_ms,
        }
        res = await self._client.post("/scrape", json=payload)
        if res.status_code >= 400:
            raise FirecrawlError(f"Firecrawl returned HTTP {res.status_code}", status_code=res.status_code)
        try:
            body = res.json()
        except ValueError as e:
            raise FirecrawlError(f"Firecrawl returned invalid JSON: {e}")
        doc = parse_scrape_response(body)
        logger.debug("Firecrawl scraped %s (%d chars)", url, len(doc.markdown))
        return doc
