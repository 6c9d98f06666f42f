from __future__ import annotations

from .errors import InvalidContent

PRIVACY_KEYWORDS = ("privacy", "personal information", "data collection", "cookies", "third party")

MIN_LENGTH_STRUCTURED = 100
MIN_LENGTH_DEFAULT = 500


def min_length_for(fetch_method: str) -> int:
    # Scraper output is already main-content markdown, so less text is acceptable.
    if fetch_method == "structured-scrape":
        return MIN_LENGTH_STRUCTURED
    return MIN_LENGTH_DEFAULT


def validate_policy_content(text: str | None, min_length: int = MIN_LENGTH_DEFAULT) -> str:
    content = (text or "").strip()
    if not content:
        raise InvalidContent("No text could be extracted from the page.")
    if len(content) < min_length:
        raise InvalidContent(
            "The extracted content is too short to be a privacy policy. "
            "Please provide a direct link to a privacy policy page.",
            details={"content_length": len(content), "min_length": min_length},
        )
    lowered = content.lower()
    if not any(keyword in lowered for keyword in PRIVACY_KEYWORDS):
        raise InvalidContent(details={"content_length": len(content)})
    return content
