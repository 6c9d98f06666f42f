"""Error taxonomy for the analysis pipeline.

Every error carries a short machine-readable ``code``, a user-facing
``message`` and the HTTP status the API should answer with.
"""
from __future__ import annotations

from typing import Any


class PrivacyHubError(Exception):
    code = "Internal server error"
    status_code = 500
    default_message = "Analysis failed. Please try again or contact support."

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self, include_details: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.code, "message": self.message}
        if include_details and self.details is not None:
            payload["details"] = self.details
        return payload


class InvalidUrl(PrivacyHubError):
    code = "Invalid URL"
    status_code = 400
    default_message = "The provided URL is not valid."


class InvalidRequest(PrivacyHubError):
    code = "Invalid request"
    status_code = 400
    default_message = "The request body is not valid."


class Unauthorized(PrivacyHubError):
    code = "Unauthorized"
    status_code = 401
    default_message = "Missing or invalid credentials."


class NotFound(PrivacyHubError):
    code = "Not found"
    status_code = 404
    default_message = "Analysis not found."


class DiscoveryFailed(PrivacyHubError):
    code = "Privacy policy not found"
    status_code = 400
    default_message = (
        "Could not automatically locate the privacy policy for this domain. "
        "Please provide a direct link to the privacy policy."
    )


class ContentExtractionFailed(PrivacyHubError):
    code = "Content extraction failed"
    status_code = 400
    default_message = (
        "Could not extract sufficient content from the URL. "
        "The page may be protected or use JavaScript rendering."
    )

    def __init__(self, message: str | None = None, *, attempts: list | None = None, details: Any = None):
        self.attempts = list(attempts or [])
        if details is None and self.attempts:
            details = [a.describe() for a in self.attempts]
        super().__init__(message, details=details)

    @property
    def strategies(self) -> list[str]:
        return [a.strategy for a in self.attempts]


class ConnectionFailed(ContentExtractionFailed):
    code = "Connection failed"
    status_code = 400
    default_message = "Could not connect to the website. Please check the URL."


class InvalidContent(PrivacyHubError):
    code = "Invalid content"
    status_code = 400
    default_message = (
        "The extracted content does not appear to be a privacy policy. "
        "Please provide a direct link to a privacy policy page."
    )


class UpstreamRateLimited(PrivacyHubError):
    code = "Rate limit exceeded"
    status_code = 429
    default_message = "Please try again in a moment."


class AnalysisParseError(PrivacyHubError):
    code = "Analysis parse error"
    status_code = 500
    default_message = "Failed to parse analysis results. Please try again."


class ScoringServiceError(PrivacyHubError):
    code = "Scoring service error"
    status_code = 500
    default_message = "The analysis service is unavailable. Please try again later."


class PipelineTimeout(PrivacyHubError):
    code = "Timeout"
    status_code = 504
    default_message = "Request timed out. The website may be slow or unresponsive."


class ConfigurationError(PrivacyHubError):
    code = "API configuration error"
    status_code = 500
    default_message = "The service is not configured correctly."
