from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from .aggregator import compute
from .assembler import assemble_result
from .browser import BrowserSlots
from .config import Settings
from .content_validator import min_length_for, validate_policy_content
from .discovery import discover_policy_url
from .errors import InvalidUrl, PipelineTimeout
from .fetcher import ContentFetcher
from .key_health import KeyHealthCache
from .models import AnalysisResult, PolicyCandidateUrl
from .rubric import CATEGORY_KEYS
from .scorer import OpenRouterCompletion, PolicyScorer
from .url_validator import is_bare_domain, validate_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

Discover = Callable[[str], Awaitable[PolicyCandidateUrl]]


class PrivacyAnalyzer:
    """URL in, scored ``AnalysisResult`` out.

    validate -> discover (bare domains only) -> fetch -> validate content ->
    score -> aggregate -> assemble.
    """

    def __init__(
        self,
        *,
        fetcher: ContentFetcher,
        scorer: PolicyScorer,
        discover: Discover = discover_policy_url,
    ):
        self._fetcher = fetcher
        self._scorer = scorer
        self._discover = discover

    @classmethod
    def from_settings(cls, settings: Settings, keys: KeyHealthCache) -> PrivacyAnalyzer:
        settings.require_scoring_keys()
        slots = BrowserSlots(settings.playwright_concurrency, settings.playwright_acquire_timeout_s)
        return cls(
            fetcher=ContentFetcher.default(firecrawl_api_key=settings.firecrawl_api_key, slots=slots),
            scorer=PolicyScorer(keys, OpenRouterCompletion(settings)),
        )

    async def analyze(self, raw_url: str) -> AnalysisResult:
        t0 = time.perf_counter()
        timings: dict[str, int] = {}

        def mark(name: str, start: float) -> None:
            timings[name] = int((time.perf_counter() - start) * 1000)

        validation = validate_url(raw_url)
        if not validation.valid or not validation.sanitized:
            raise InvalidUrl(validation.error)
        url = validation.sanitized

        target = url
        if is_bare_domain(url):
            start = time.perf_counter()
            candidate = await self._discover(url)
            mark("discovery", start)
            logger.info("Policy URL for %s: %s (%s)", url, candidate.url, candidate.provenance)
            target = candidate.url

        start = time.perf_counter()
        content = await self._fetcher.fetch(target)
        mark("fetch", start)

        text = validate_policy_content(content.raw_text, min_length_for(content.fetch_method))

        start = time.perf_counter()
        analysis = await self._scorer.score(text)
        mark("scoring", start)

        aggregate = compute({key: analysis["categories"][key]["score"] for key in CATEGORY_KEYS})
        result = assemble_result(requested_url=url, content=content, analysis=analysis, aggregate=aggregate)

        mark("total", t0)
        logger.info(
            "Analysis complete for %s: %.2f %s %s via %s, timings=%s",
            url, result.overall_score, result.grade, result.risk_level, result.scraper_used, timings,
        )
        return result


async def with_deadline(awaitable: Awaitable[T], timeout_s: float) -> T:
    """Abandon ``awaitable`` after ``timeout_s``; cancellation reaches whatever it is awaiting."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.error("Analysis exceeded the %.0fs deadline", timeout_s)
        raise PipelineTimeout(details={"deadline_s": timeout_s})
