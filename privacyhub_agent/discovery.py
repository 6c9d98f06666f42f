from __future__ import annotations

import html
import logging
import re
from urllib.parse import urljoin, urlparse

import httpx

from .errors import DiscoveryFailed
from .models import PolicyCandidateUrl

logger = logging.getLogger(__name__)

DISCOVERY_USER_AGENT = "Mozilla/5.0 (compatible; PrivacyHubBot/1.0; +https://privacyhub.in)"

HOMEPAGE_TIMEOUT_S = 15.0
PROBE_TIMEOUT_S = 8.0

LINK_KEYWORDS = ("privacy", "policy", "data", "personal information", "gdpr", "ccpa")

COMMON_POLICY_PATHS = (
    "/privacy",
    "/privacy-policy",
    "/privacy/policy",
    "/legal/privacy",
    "/legal/privacy-policy",
    "/about/privacy",
    "/en/privacy",
    "/privacy-notice",
    "/privacy-statement",
    "/data-policy",
    "/data-privacy",
    "/terms-privacy",
    "/help/privacy",
    "/policies/privacy",
    "/legal/terms-and-privacy",
    "/about/legal/privacy-policy",
    "/legal/privacy-notice",
    "/privacy-center",
    "/privacy-hub",
    "/privacy-information",
)

_ANCHOR_RE = re.compile(r"<a\b([^>]*)>(.*?)</a\s*>", re.IGNORECASE | re.DOTALL)
_HREF_RE = re.compile(r"href\s*=\s*([\"']?)([^\"'\s>]+)\1", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")

_HEADERS = {
    "user-agent": DISCOVERY_USER_AGENT,
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.6",
}


def _origin(domain: str) -> str:
    parsed = urlparse(domain)
    return f"{parsed.scheme or 'https'}://{parsed.netloc}"


def find_policy_link(page_html: str, base_url: str) -> str | None:
    """First anchor whose text or href mentions a privacy keyword, made absolute."""
    for attrs, inner in _ANCHOR_RE.findall(page_html or ""):
        href_match = _HREF_RE.search(attrs)
        if not href_match:
            continue
        href = html.unescape(href_match.group(2).strip())
        if not href or href.startswith("#") or href.lower().startswith(("mailto:", "tel:", "javascript:")):
            continue
        text = html.unescape(_TAG_RE.sub(" ", inner)).lower()
        if any(kw in text or kw in href.lower() for kw in LINK_KEYWORDS):
            absolute = urljoin(base_url.rstrip("/") + "/", href)
            if urlparse(absolute).scheme in ("http", "https"):
                return absolute
    return None


async def _scan_homepage(client: httpx.AsyncClient, origin: str) -> tuple[bool, str | None]:
    """Returns (homepage reachable, policy link if any)."""
    try:
        res = await client.get(origin, headers=_HEADERS, timeout=HOMEPAGE_TIMEOUT_S)
    except httpx.HTTPError as e:
        logger.info("Homepage fetch failed for %s: %s", origin, e)
        return False, None
    content_type = (res.headers.get("content-type") or "").lower()
    if res.status_code >= 400 or ("html" not in content_type and content_type):
        return True, None
    return True, find_policy_link(res.text, str(res.url) if res.url else origin)


async def _probe_common_paths(client: httpx.AsyncClient, origin: str) -> str | None:
    for path in COMMON_POLICY_PATHS:
        url = origin + path
        try:
            res = await client.head(url, headers=_HEADERS, timeout=PROBE_TIMEOUT_S)
        except httpx.HTTPError:
            continue
        if res.status_code == 200:
            return url
    return None


async def discover_policy_url(domain: str, *, client: httpx.AsyncClient | None = None) -> PolicyCandidateUrl:
    """Locate a privacy policy for a bare domain.

    Homepage links are scanned first, then the common paths are probed in
    order. When neither works the domain itself is returned so the content
    stage can try the homepage, unless the site could not be reached at all.
    """
    origin = _origin(domain)
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as own_client:
            return await _discover(own_client, origin)
    return await _discover(client, origin)


async def _discover(client: httpx.AsyncClient, origin: str) -> PolicyCandidateUrl:
    reachable, link = await _scan_homepage(client, origin)
    if link:
        logger.info("Found privacy policy link on homepage: %s", link)
        return PolicyCandidateUrl(url=link, provenance="homepage-link")

    probed = await _probe_common_paths(client, origin)
    if probed:
        logger.info("Found privacy policy at common path: %s", probed)
        return PolicyCandidateUrl(url=probed, provenance="common-path")

    if not reachable:
        raise DiscoveryFailed(details={"domain": origin})

    logger.info("No privacy policy link found for %s, falling back to the homepage", origin)
    return PolicyCandidateUrl(url=origin, provenance="user-supplied")
