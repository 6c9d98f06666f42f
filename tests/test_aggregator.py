"""
Tests for the weighted score, grade and risk tables.
"""

import random

import pytest

from privacyhub_agent.aggregator import (
    GRADE_ORDER,
    GRADE_TABLE,
    RISK_TABLE,
    compute,
    grade_for,
    risk_level_for,
    weighted_overall,
)
from privacyhub_agent.rubric import CATEGORY_KEYS, WEIGHTS

from .conftest import SCENARIO_SCORES


def _random_scores(rng: random.Random):
    return {key: rng.randint(1, 10) for key in CATEGORY_KEYS}


class TestWeightedOverall:
    """Overall score is the weight-normalized sum."""

    def test_weights_sum_to_100(self):
        assert sum(WEIGHTS.values()) == 100

    def test_worked_example(self):
        assert weighted_overall(SCENARIO_SCORES) == pytest.approx(8.28)

    def test_uniform_scores(self):
        assert weighted_overall({k: 7 for k in CATEGORY_KEYS}) == pytest.approx(7.0)

    def test_missing_category(self):
        scores = dict(SCENARIO_SCORES)
        del scores["transparency"]
        with pytest.raises(ValueError, match="transparency"):
            weighted_overall(scores)

    @pytest.mark.parametrize("bad", [0, 11, -3])
    def test_out_of_range(self, bad):
        scores = dict(SCENARIO_SCORES, data_sharing=bad)
        with pytest.raises(ValueError):
            weighted_overall(scores)

    def test_pure_over_random_sample(self):
        rng = random.Random(1234)
        for _ in range(200):
            scores = _random_scores(rng)
            first = compute(scores)
            assert compute(dict(scores)) == first
            assert 1 <= first.overall <= 10


class TestTables:
    """Grade and risk bands cover the whole range without gaps."""

    def test_tables_descending_and_anchored_at_zero(self):
        for table in (GRADE_TABLE, RISK_TABLE):
            bounds = [lower for lower, _ in table]
            assert bounds == sorted(bounds, reverse=True)
            assert bounds[-1] == 0.0

    def test_grade_monotonic(self):
        previous = GRADE_ORDER.index(grade_for(1.0))
        step = 1.0
        while step <= 10.0:
            current = GRADE_ORDER.index(grade_for(step))
            assert current >= previous
            previous = current
            step = round(step + 0.01, 2)

    @pytest.mark.parametrize(
        "overall,grade",
        [(10, "A+"), (9.5, "A+"), (9.49, "A"), (8.5, "A"), (8.0, "A-"), (7.99, "B+"),
         (6.5, "B-"), (5.0, "C-"), (4.99, "D"), (4.0, "D"), (3.99, "F"), (1, "F")],
    )
    def test_grade_boundaries(self, overall, grade):
        assert grade_for(overall) == grade

    @pytest.mark.parametrize(
        "overall,risk",
        [(10, "EXEMPLARY"), (9.5, "EXEMPLARY"), (9.49, "LOW"), (7.5, "LOW"),
         (7.49, "MODERATE"), (5.5, "MODERATE"), (5.49, "MODERATE-HIGH"), (3.5, "MODERATE-HIGH"), (3.49, "HIGH")],
    )
    def test_risk_boundaries(self, overall, risk):
        assert risk_level_for(overall) == risk


class TestScenario:
    def test_mostly_strong_policy(self):
        result = compute(SCENARIO_SCORES)
        assert result.overall == pytest.approx(8.28)
        assert result.grade == "A-"
        assert result.risk_level == "LOW"
