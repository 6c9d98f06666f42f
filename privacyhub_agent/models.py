from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FetchMethod = Literal["structured-scrape", "headless-browser", "raw-http"]
ScraperName = Literal["firecrawl", "playwright", "fetch"]
Provenance = Literal["homepage-link", "common-path", "user-supplied"]
RiskLevel = Literal["EXEMPLARY", "LOW", "MODERATE", "MODERATE-HIGH", "HIGH"]
OverallHealth = Literal["operational", "degraded", "outage"]

SCRAPER_FOR_METHOD: dict[str, str] = {
    "structured-scrape": "firecrawl",
    "headless-browser": "playwright",
    "raw-http": "fetch",
}


@dataclass(frozen=True)
class PolicyCandidateUrl:
    url: str
    provenance: Provenance


@dataclass(frozen=True)
class FetchedContent:
    url: str
    title: str
    raw_text: str
    hostname: str
    fetch_method: FetchMethod

    @property
    def scraper_used(self) -> str:
        return SCRAPER_FOR_METHOD[self.fetch_method]


class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1)


class CategoryScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    weight: int
    score: float
    reasoning: str
    regulatory_notes: str = ""


class RegulatoryCompliance(BaseModel):
    model_config = ConfigDict(frozen=True)

    gdpr: str = "UNKNOWN"
    ccpa: str = "UNKNOWN"
    dpdp: str = "UNKNOWN"
    major_violations: list[str] = []


class CriticalFindings(BaseModel):
    model_config = ConfigDict(frozen=True)

    high_risk_practices: list[str] = []
    regulatory_gaps: list[str] = []
    data_subject_impacts: list[str] = []


class Recommendations(BaseModel):
    model_config = ConfigDict(frozen=True)

    immediate_actions: list[str] = []
    medium_term_improvements: list[str] = []
    best_practice_adoption: list[str] = []


class ServiceAssessment(BaseModel):
    """What the scoring service declared, kept verbatim next to our own numbers."""

    model_config = ConfigDict(frozen=True)

    overall_score: float | None = None
    privacy_grade: str | None = None
    risk_level: str | None = None


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    policy_url: str
    title: str
    hostname: str
    timestamp: str
    scraper_used: ScraperName
    content_length: int

    overall_score: float
    grade: str
    risk_level: RiskLevel
    regulatory_compliance: RegulatoryCompliance
    categories: list[CategoryScore]
    critical_findings: CriticalFindings
    positive_practices: list[str]
    recommendations: Recommendations
    executive_summary: str
    service_assessment: ServiceAssessment


class AnalyzeResponse(BaseModel):
    success: Literal[True] = True
    data: AnalysisResult


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    message: str
    details: Any | None = None


class CredentialStatus(BaseModel):
    name: str
    is_available: bool
    credits: float = 0
    rate_limit_remaining: int = 0
    last_checked: float
    error: str | None = None


class CredentialStatusOut(BaseModel):
    name: str
    isAvailable: bool
    credits: float
    rateLimitRemaining: int
    lastChecked: str
    error: str | None = None


class CreditsResponse(BaseModel):
    success: Literal[True] = True
    keys: list[CredentialStatusOut]
    totalKeys: int
    availableKeys: int
    totalCredits: float
    totalRateLimitRemaining: int
    overallHealth: OverallHealth
    timestamp: str


class HistoryEntry(BaseModel):
    id: int
    brand_name: str
    url: str
    created_at: str
    updated_at: str
    result: AnalysisResult


class HistoryStats(BaseModel):
    total_analyses: int
    average_score: float
    category_averages: dict[str, float]


class HistoryResponse(BaseModel):
    analyses: list[HistoryEntry]
    total: int
    stats: HistoryStats | None = None
