from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from playwright.async_api import Page, async_playwright

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 PrivacyHubCrawler/1.0"
)

SETTLE_DELAY_MS = 2000
MIN_CONTAINER_CHARS = 500

STRIP_SELECTORS = (
    "script, style, nav, header, footer, aside, "
    '[role="navigation"], [role="banner"], [role="complementary"]'
)

CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    ".main-content",
    "#main-content",
    ".content",
    "#content",
    ".privacy-policy",
    ".policy-content",
    "article",
    ".article-content",
    ".post-content",
    ".entry-content",
    ".container",
    "body",
)

# Runs in the page: drop chrome, then return the first container with real text.
_EXTRACT_JS = """
([stripSelectors, selectors, minChars]) => {
  document.querySelectorAll(stripSelectors).forEach((el) => el.remove());
  for (const selector of selectors) {
    const el = document.querySelector(selector);
    const text = el && el.textContent ? el.textContent.trim() : "";
    if (text.length > minChars) {
      return text;
    }
  }
  return document.body && document.body.textContent ? document.body.textContent.trim() : "";
}
"""


class BrowserBusy(RuntimeError):
    pass


@dataclass(frozen=True)
class BrowserText:
    title: str
    text: str
    final_url: str


class BrowserSlots:
    """Bounds how many headless browsers run at once in this process."""

    def __init__(self, concurrency: int = 1, acquire_timeout_s: float = 5.0):
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._acquire_timeout_s = acquire_timeout_s

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._acquire_timeout_s)
        except asyncio.TimeoutError:
            raise BrowserBusy("too many concurrent browser jobs")
        try:
            yield
        finally:
            self._semaphore.release()


@asynccontextmanager
async def browser_page(*, user_agent: str = BROWSER_USER_AGENT) -> AsyncIterator[Page]:
    """Open a throwaway Chromium page; everything is closed on every exit path,
    including task cancellation."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=True,
            args=[
                "--no-sandbox",
                "--disable-setuid-sandbox",
                "--disable-dev-shm-usage",
                "--disable-gpu",
            ],
        )
        try:
            context = await browser.new_context(
                viewport={"width": 1365, "height": 768},
                user_agent=user_agent,
                java_script_enabled=True,
                ignore_https_errors=True,
            )
            try:
                yield await context.new_page()
            finally:
                await context.close()
        finally:
            await browser.close()


async def extract_page_text(
    url: str,
    *,
    timeout_ms: int = 30000,
    settle_ms: int = SETTLE_DELAY_MS,
    slots: BrowserSlots | None = None,
) -> BrowserText:
    if slots is None:
        return await _extract(url, timeout_ms, settle_ms)
    async with slots.slot():
        return await _extract(url, timeout_ms, settle_ms)


async def _extract(url: str, timeout_ms: int, settle_ms: int) -> BrowserText:
    async with browser_page() as page:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        await page.wait_for_timeout(settle_ms)
        title = (await page.title()) or ""
        text = await page.evaluate(_EXTRACT_JS, [STRIP_SELECTORS, list(CONTENT_SELECTORS), MIN_CONTAINER_CHARS])
        logger.debug("Browser extracted %d chars from %s", len(text or ""), url)
        return BrowserText(title=title.strip(), text=text or "", final_url=page.url)
