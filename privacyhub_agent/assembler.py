from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .aggregator import Aggregate
from .models import (
    AnalysisResult,
    CategoryScore,
    CriticalFindings,
    FetchedContent,
    Recommendations,
    RegulatoryCompliance,
    ServiceAssessment,
)
from .rubric import CATEGORIES


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    out: list[str] = []
    for item in value:
        if item is None:
            continue
        s = str(item).strip()
        if s:
            out.append(s)
    return out


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _compliance_label(value: Any) -> str:
    label = str(value or "UNKNOWN").strip().upper().replace(" ", "_").replace("-", "_")
    return label or "UNKNOWN"


def _optional_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def assemble_result(
    *,
    requested_url: str,
    content: FetchedContent,
    analysis: dict[str, Any],
    aggregate: Aggregate,
    timestamp: datetime | None = None,
) -> AnalysisResult:
    """Merge fetch metadata, the validated analysis and our own aggregation."""
    categories_in = _as_dict(analysis.get("categories"))
    categories = [
        CategoryScore(
            key=c.key,
            name=c.name,
            weight=c.weight,
            score=float(categories_in[c.key]["score"]),
            reasoning=str(categories_in[c.key].get("reasoning") or "").strip(),
            regulatory_notes=str(categories_in[c.key].get("regulatory_notes") or "").strip(),
        )
        for c in CATEGORIES
    ]

    compliance = _as_dict(analysis.get("regulatory_compliance"))
    findings_raw = analysis.get("critical_findings")
    if isinstance(findings_raw, list):
        findings = CriticalFindings(high_risk_practices=_as_str_list(findings_raw))
    else:
        findings_in = _as_dict(findings_raw)
        findings = CriticalFindings(
            high_risk_practices=_as_str_list(findings_in.get("high_risk_practices")),
            regulatory_gaps=_as_str_list(findings_in.get("regulatory_gaps")),
            data_subject_impacts=_as_str_list(findings_in.get("data_subject_impacts")),
        )

    recs_in = _as_dict(analysis.get("actionable_recommendations") or analysis.get("recommendations"))

    when = timestamp or datetime.now(timezone.utc)
    return AnalysisResult(
        url=requested_url,
        policy_url=content.url,
        title=content.title,
        hostname=content.hostname,
        timestamp=when.isoformat(),
        scraper_used=content.scraper_used,
        content_length=len(content.raw_text),
        overall_score=aggregate.overall,
        grade=aggregate.grade,
        risk_level=aggregate.risk_level,
        regulatory_compliance=RegulatoryCompliance(
            gdpr=_compliance_label(compliance.get("gdpr_compliance") or compliance.get("gdpr")),
            ccpa=_compliance_label(compliance.get("ccpa_compliance") or compliance.get("ccpa")),
            dpdp=_compliance_label(compliance.get("dpdp_act_compliance") or compliance.get("dpdp")),
            major_violations=_as_str_list(compliance.get("major_violations")),
        ),
        categories=categories,
        critical_findings=findings,
        positive_practices=_as_str_list(analysis.get("positive_practices")),
        recommendations=Recommendations(
            immediate_actions=_as_str_list(recs_in.get("immediate_actions")),
            medium_term_improvements=_as_str_list(recs_in.get("medium_term_improvements")),
            best_practice_adoption=_as_str_list(recs_in.get("best_practice_adoption")),
        ),
        executive_summary=str(analysis.get("executive_summary") or "").strip(),
        service_assessment=ServiceAssessment(
            overall_score=_optional_float(analysis.get("overall_score")),
            privacy_grade=str(analysis["privacy_grade"]) if analysis.get("privacy_grade") is not None else None,
            risk_level=str(analysis["risk_level"]) if analysis.get("risk_level") is not None else None,
        ),
    )
