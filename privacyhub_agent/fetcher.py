from __future__ import annotations

import asyncio
import html as html_lib
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal
from urllib.parse import urlparse

import httpx
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserSlots, extract_page_text
from .errors import ConnectionFailed, ContentExtractionFailed, InvalidContent, PipelineTimeout, PrivacyHubError
from .firecrawl import FirecrawlClient
from .models import FetchedContent, FetchMethod

logger = logging.getLogger(__name__)

FETCH_USER_AGENT = "Mozilla/5.0 (compatible; PrivacyHubBot/1.0; +https://privacyhub.in)"

MIN_STRATEGY_CHARS = 100

STRUCTURED_TIMEOUT_S = 15.0
BROWSER_TIMEOUT_S = 30.0
RAW_HTTP_TIMEOUT_S = 15.0

Outcome = Literal["success", "too-short", "failed", "timeout", "connection", "skipped"]
Strategy = Callable[[str], Awaitable[FetchedContent]]

_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)

_CONNECTION_MARKERS = (
    "err_name_not_resolved",
    "err_connection_refused",
    "enotfound",
    "econnrefused",
    "name or service not known",
    "nodename nor servname",
)


@dataclass(frozen=True)
class StrategyAttempt:
    strategy: FetchMethod
    outcome: Outcome
    detail: str = ""

    def describe(self) -> dict[str, str]:
        return {"strategy": self.strategy, "outcome": self.outcome, "detail": self.detail}


def hostname_of(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def html_to_text(page_html: str) -> str:
    text = _SCRIPT_RE.sub(" ", page_html or "")
    text = _STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def html_title(page_html: str) -> str:
    match = _TITLE_RE.search(page_html or "")
    if not match:
        return ""
    return _WS_RE.sub(" ", html_lib.unescape(match.group(1))).strip()


def _classify(exc: BaseException) -> Outcome:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException, PlaywrightTimeoutError)):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        return "connection"
    message = str(exc).lower()
    if "timeout" in message or "timed out" in message:
        return "timeout"
    if any(marker in message for marker in _CONNECTION_MARKERS):
        return "connection"
    return "failed"


# --- strategies ---------------------------------------------------------------


def structured_scrape_strategy(api_key: str) -> Strategy:
    async def run(url: str) -> FetchedContent:
        async with FirecrawlClient(api_key, timeout=STRUCTURED_TIMEOUT_S) as client:
            doc = await client.scrape(url)
        return FetchedContent(
            url=doc.source_url or url,
            title=doc.title or hostname_of(url),
            raw_text=doc.markdown.strip(),
            hostname=hostname_of(url),
            fetch_method="structured-scrape",
        )

    return run


def headless_browser_strategy(slots: BrowserSlots | None = None) -> Strategy:
    async def run(url: str) -> FetchedContent:
        page = await extract_page_text(url, timeout_ms=int(BROWSER_TIMEOUT_S * 1000), slots=slots)
        return FetchedContent(
            url=page.final_url or url,
            title=page.title or hostname_of(url),
            raw_text=_WS_RE.sub(" ", page.text).strip(),
            hostname=hostname_of(url),
            fetch_method="headless-browser",
        )

    return run


async def fetch_raw_http(url: str, *, client: httpx.AsyncClient | None = None) -> FetchedContent:
    headers = {
        "user-agent": FETCH_USER_AGENT,
        "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "accept-language": "en-US,en;q=0.6",
    }
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as own_client:
            res = await own_client.get(url, headers=headers, timeout=RAW_HTTP_TIMEOUT_S)
    else:
        res = await client.get(url, headers=headers, timeout=RAW_HTTP_TIMEOUT_S)
    res.raise_for_status()
    page_html = res.text
    return FetchedContent(
        url=str(res.url) if res.url else url,
        title=html_title(page_html) or hostname_of(url),
        raw_text=html_to_text(page_html),
        hostname=hostname_of(url),
        fetch_method="raw-http",
    )


def raw_http_strategy(client: httpx.AsyncClient | None = None) -> Strategy:
    async def run(url: str) -> FetchedContent:
        return await fetch_raw_http(url, client=client)

    return run


# --- fetcher -----------------------------------------------------------------


class ContentFetcher:
    """Tries structured scrape, headless browser, then raw HTTP, in that order.

    A strategy is ``None`` when it is not configured; it is recorded as
    skipped. Strategies never overlap, and the first one returning at least
    ``min_chars`` characters wins.
    """

    def __init__(
        self,
        *,
        structured: Strategy | None = None,
        browser: Strategy | None = None,
        raw_http: Strategy | None = None,
        min_chars: int = MIN_STRATEGY_CHARS,
        timeouts: dict[str, float] | None = None,
    ):
        self._plan: list[tuple[FetchMethod, Strategy | None]] = [
            ("structured-scrape", structured),
            ("headless-browser", browser),
            ("raw-http", raw_http),
        ]
        self.min_chars = min_chars
        self._timeouts = {
            "structured-scrape": STRUCTURED_TIMEOUT_S,
            "headless-browser": BROWSER_TIMEOUT_S + 5,
            "raw-http": RAW_HTTP_TIMEOUT_S,
        }
        if timeouts:
            self._timeouts.update(timeouts)

    @classmethod
    def default(cls, *, firecrawl_api_key: str | None, slots: BrowserSlots | None = None) -> ContentFetcher:
        return cls(
            structured=structured_scrape_strategy(firecrawl_api_key) if firecrawl_api_key else None,
            browser=headless_browser_strategy(slots),
            raw_http=raw_http_strategy(),
        )

    async def fetch(self, url: str) -> FetchedContent:
        attempts: list[StrategyAttempt] = []
        for method, strategy in self._plan:
            if strategy is None:
                attempts.append(StrategyAttempt(method, "skipped", "not configured"))
                continue

            logger.info("Fetching %s with %s", url, method)
            try:
                content = await asyncio.wait_for(strategy(url), timeout=self._timeouts[method])
            except Exception as e:
                outcome = _classify(e)
                logger.warning("%s failed for %s (%s): %s", method, url, outcome, e)
                attempts.append(StrategyAttempt(method, outcome, f"{type(e).__name__}: {e}"))
                continue

            length = len(content.raw_text or "")
            if length < self.min_chars:
                logger.warning("%s returned insufficient content for %s (%d chars)", method, url, length)
                attempts.append(StrategyAttempt(method, "too-short", f"{length} chars"))
                continue

            logger.info("%s succeeded for %s, length: %d", method, url, length)
            return content

        raise self._exhausted(url, attempts)

    @staticmethod
    def _exhausted(url: str, attempts: list[StrategyAttempt]) -> PrivacyHubError:
        tried = [a for a in attempts if a.outcome != "skipped"]
        logger.error("All content strategies failed for %s: %s", url, [a.describe() for a in attempts])
        details = [a.describe() for a in attempts]
        # The page was reached every time but carries almost no text.
        if tried and all(a.outcome == "too-short" for a in tried):
            return InvalidContent(
                "The extracted content is too short to be a privacy policy. "
                "Please provide a direct link to a privacy policy page.",
                details=details,
            )
        if tried and all(a.outcome == "timeout" for a in tried):
            return PipelineTimeout(details=details)
        if tried and all(a.outcome == "connection" for a in tried):
            return ConnectionFailed(attempts=attempts)
        names = ", ".join(a.strategy for a in tried) or "none"
        return ContentExtractionFailed(
            f"Failed to extract content from the URL (tried: {names}). "
            "Please verify the URL is accessible or provide a direct link to the privacy policy.",
            attempts=attempts,
        )
