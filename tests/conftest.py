"""
Pytest Configuration and Shared Fixtures

Stub scoring responses, credentials, a controllable clock and canned policy
text shared by the test modules.
"""

import json
from typing import Any, Dict

import pytest

from privacyhub_agent.config import Credential
from privacyhub_agent.key_health import KeyHealthCache
from privacyhub_agent.models import FetchedContent


# ============================================================================
# Mock Data Fixtures
# ============================================================================

POLICY_TEXT = (
    "Privacy Policy. This privacy policy explains how Example Inc collects, uses and shares "
    "personal information when you use our services. We collect account data, usage data and "
    "cookies. We share data with third party processors under contract. You may request access, "
    "correction or deletion of your personal information at any time by contacting privacy@example.com. "
    "We retain data only as long as necessary and protect it with encryption in transit and at rest. "
    "Residents of the EU, California and India have additional rights under GDPR, CCPA and the DPDP Act."
)

SCENARIO_SCORES = {
    "data_collection": 9,
    "data_sharing": 8,
    "user_rights": 7,
    "security_measures": 9,
    "compliance_framework": 8,
    "transparency": 9,
}


def make_analysis(scores: Dict[str, float] = None) -> Dict[str, Any]:
    scores = scores or SCENARIO_SCORES
    return {
        "overall_score": 8.3,
        "risk_level": "LOW",
        "privacy_grade": "A",
        "regulatory_compliance": {
            "gdpr_compliance": "MOSTLY_COMPLIANT",
            "ccpa_compliance": "compliant",
            "dpdp_act_compliance": "PARTIALLY_COMPLIANT",
            "major_violations": [],
        },
        "categories": {
            key: {"score": score, "reasoning": f"{key} looks fine", "regulatory_notes": "GDPR Art. 5"}
            for key, score in scores.items()
        },
        "critical_findings": {
            "high_risk_practices": ["Broad advertising partner sharing"],
            "regulatory_gaps": [],
            "data_subject_impacts": [],
        },
        "positive_practices": ["Clear retention periods"],
        "actionable_recommendations": {
            "immediate_actions": ["Name advertising partners"],
            "medium_term_improvements": [],
            "best_practice_adoption": [],
        },
        "executive_summary": "A solid policy with minor sharing concerns.",
    }


@pytest.fixture
def policy_text() -> str:
    return POLICY_TEXT


@pytest.fixture
def analysis_json() -> str:
    return json.dumps(make_analysis())


@pytest.fixture
def fetched_content() -> FetchedContent:
    return FetchedContent(
        url="https://example.com/privacy",
        title="Example - Privacy Policy",
        raw_text=POLICY_TEXT,
        hostname="example.com",
        fetch_method="raw-http",
    )


# ============================================================================
# Credentials & Clock
# ============================================================================

class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials():
    return [
        Credential(name="openrouter-default", key="sk-or-default"),
        Credential(name="openrouter-one", key="sk-or-one"),
        Credential(name="openrouter-two", key="sk-or-two"),
    ]


@pytest.fixture
def healthy_checker():
    calls = []

    async def check(credential: Credential) -> Dict[str, Any]:
        calls.append(credential.name)
        return {"credits": 5.0, "rate_limit_remaining": 100}

    check.calls = calls
    return check


@pytest.fixture
def key_cache(credentials, healthy_checker, clock) -> KeyHealthCache:
    return KeyHealthCache(credentials, checker=healthy_checker, clock=clock)
