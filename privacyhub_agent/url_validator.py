from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

MAX_URL_LENGTH = 2048

# A scheme prefix, but not a host:port pair such as "example.com:8080".
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*:(?!\d)")
_HTTP_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

_DANGEROUS_PATTERNS = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"^(data|file):", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    # Event-handler attributes only after markup characters; "section_id=" is a normal query key.
    re.compile(r"[<\"']\s*on\w+\s*=", re.IGNORECASE),
)

_FORBIDDEN_HOSTS = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "169.254.169.254",
    "metadata.google.internal",
}


@dataclass(frozen=True)
class UrlValidation:
    valid: bool
    error: str | None = None
    sanitized: str | None = None


def _reject(error: str) -> UrlValidation:
    return UrlValidation(valid=False, error=error)


def _ip_of(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Parse dotted, shorthand ("127.1") and integer IPv4 forms, and IPv6."""
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        try:
            address = ipaddress.IPv4Address(socket.inet_aton(hostname))
        except OSError:
            return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return address.ipv4_mapped
    return address


def _is_internal(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def validate_url(raw: object) -> UrlValidation:
    """Normalize user input into an absolute http(s) URL.

    Bare domains get ``https://``; anything with a path must carry an explicit
    scheme. Never raises: callers surface ``error`` to the user.
    """
    if not isinstance(raw, str) or not raw.strip():
        return _reject("URL must be a non-empty string.")
    if len(raw) > MAX_URL_LENGTH:
        return _reject(f"URL is too long (max {MAX_URL_LENGTH} characters).")

    value = raw.strip()
    if re.search(r"\s", value):
        return _reject("URL must not contain whitespace.")

    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(value):
            return _reject("URL contains potentially malicious content.")

    if not _HTTP_SCHEME_RE.match(value):
        if _SCHEME_RE.match(value):
            return _reject("Only HTTP and HTTPS URLs are allowed.")
        if "/" in value.rstrip("/"):
            return _reject("URLs with a path must start with http:// or https://.")
        value = "https://" + value

    try:
        parsed = urlparse(value)
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return _reject("Invalid URL format.")

    if parsed.scheme.lower() not in ("http", "https"):
        return _reject("Only HTTP and HTTPS URLs are allowed.")
    if not hostname:
        return _reject("Please enter a valid website domain.")
    if hostname in _FORBIDDEN_HOSTS:
        return _reject("Cannot analyze localhost or internal URLs.")
    address = _ip_of(hostname)
    if address is not None and _is_internal(address):
        return _reject("Cannot analyze private IP addresses.")
    if "." not in hostname:
        return _reject("Please enter a valid website domain.")

    path = parsed.path.rstrip("/")
    normalized = urlunparse(
        parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower(), path=path, fragment="")
    )
    return UrlValidation(valid=True, sanitized=normalized)


def is_bare_domain(url: str) -> bool:
    """True when the URL points at a site root and discovery is needed."""
    parsed = urlparse(url)
    return parsed.path in ("", "/") and not parsed.query
