"""Weighted overall score, letter grade and risk level.

Pure functions only: the same category scores always give the same result.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .rubric import CATEGORY_KEYS, MAX_SCORE, MIN_SCORE, WEIGHTS

# (inclusive lower bound, label), highest first. The last row must start at 0.
GRADE_TABLE: tuple[tuple[float, str], ...] = (
    (9.5, "A+"),
    (8.5, "A"),
    (8.0, "A-"),
    (7.5, "B+"),
    (7.0, "B"),
    (6.5, "B-"),
    (6.0, "C+"),
    (5.5, "C"),
    (5.0, "C-"),
    (4.0, "D"),
    (0.0, "F"),
)

# Matches the rubric's integer risk bands (10 / 8-9 / 6-7 / 4-5 / 1-3) after rounding.
RISK_TABLE: tuple[tuple[float, str], ...] = (
    (9.5, "EXEMPLARY"),
    (7.5, "LOW"),
    (5.5, "MODERATE"),
    (3.5, "MODERATE-HIGH"),
    (0.0, "HIGH"),
)

GRADE_ORDER: tuple[str, ...] = tuple(label for _, label in reversed(GRADE_TABLE))


@dataclass(frozen=True)
class Aggregate:
    overall: float
    grade: str
    risk_level: str


def _lookup(table: tuple[tuple[float, str], ...], value: float) -> str:
    for lower, label in table:
        if value >= lower:
            return label
    return table[-1][1]


def weighted_overall(scores: Mapping[str, float]) -> float:
    missing = [k for k in CATEGORY_KEYS if k not in scores]
    if missing:
        raise ValueError(f"missing category scores: {', '.join(missing)}")
    for key in CATEGORY_KEYS:
        value = scores[key]
        if not MIN_SCORE <= value <= MAX_SCORE:
            raise ValueError(f"{key} score {value} outside {MIN_SCORE}-{MAX_SCORE}")
    total = sum(scores[k] * WEIGHTS[k] for k in CATEGORY_KEYS)
    return round(total / 100, 2)


def grade_for(overall: float) -> str:
    return _lookup(GRADE_TABLE, overall)


def risk_level_for(overall: float) -> str:
    return _lookup(RISK_TABLE, overall)


def compute(scores: Mapping[str, float]) -> Aggregate:
    overall = weighted_overall(scores)
    return Aggregate(overall=overall, grade=grade_for(overall), risk_level=risk_level_for(overall))
