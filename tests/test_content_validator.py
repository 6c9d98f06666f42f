"""
Tests for the privacy-policy plausibility check.
"""

import pytest

from privacyhub_agent.content_validator import (
    MIN_LENGTH_DEFAULT,
    MIN_LENGTH_STRUCTURED,
    min_length_for,
    validate_policy_content,
)
from privacyhub_agent.errors import InvalidContent

LOREM_50 = "Lorem ipsum dolor sit amet, consectetur adipiscing"


class TestValidatePolicyContent:
    def test_accepts_policy(self, policy_text):
        assert validate_policy_content("  " + policy_text + "\n") == policy_text

    def test_short_text_with_every_keyword_rejected(self):
        text = "privacy personal information data collection cookies third party"
        assert len(text) < MIN_LENGTH_DEFAULT
        with pytest.raises(InvalidContent) as exc:
            validate_policy_content(text)
        assert exc.value.details["min_length"] == MIN_LENGTH_DEFAULT

    def test_long_text_without_keywords_rejected(self):
        text = "The quick brown fox jumps over the lazy dog. " * 40
        with pytest.raises(InvalidContent):
            validate_policy_content(text)

    def test_keyword_match_is_case_insensitive(self):
        text = "PRIVACY NOTICE. " + "x" * 600
        assert validate_policy_content(text)

    def test_empty(self):
        with pytest.raises(InvalidContent):
            validate_policy_content(None)

    @pytest.mark.parametrize("method", ["structured-scrape", "headless-browser", "raw-http"])
    def test_lorem_ipsum_rejected_whatever_the_source(self, method):
        assert len(LOREM_50) == 50
        with pytest.raises(InvalidContent):
            validate_policy_content(LOREM_50, min_length_for(method))


class TestMinLength:
    def test_structured_scrape_is_more_lenient(self):
        assert min_length_for("structured-scrape") == MIN_LENGTH_STRUCTURED
        assert min_length_for("raw-http") == MIN_LENGTH_DEFAULT
        assert MIN_LENGTH_STRUCTURED < MIN_LENGTH_DEFAULT
