"""Tests for ScoringPolicy and YAML policy loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pa_calculators.approval_risk_calculator import (
    ApprovalRiskCalculator,
    InMemoryOutcomeAggregator,
    RiskScoreRequest,
    ScoringPolicy,
    load_policy,
)
from pa_calculators.approval_risk_calculator.policy import DEFAULT_POLICY

REPO_ROOT = Path(__file__).resolve().parents[1]


class TestScoringPolicy:
    @pytest.mark.parametrize(
        "cost,tier",
        [
            (60000, "ultra_high"),
            (50000, "very_high"),
            (20001, "very_high"),
            (15000, "high"),
            (10000, "moderate"),
            (5001, "moderate"),
        ],
    )
    def test_cost_tiers(self, cost, tier):
        assert DEFAULT_POLICY.cost_tier_for(cost).name == tier

    @pytest.mark.parametrize("cost", [5000, 1500, 100])
    def test_costs_without_tier(self, cost):
        assert DEFAULT_POLICY.cost_tier_for(cost) is None

    @pytest.mark.parametrize(
        "evidence,half_width",
        [(0, 12), (20, 12), (21, 10), (50, 10), (51, 8), (100, 8), (101, 6), (5000, 6)],
    )
    def test_confidence_half_width(self, evidence, half_width):
        assert DEFAULT_POLICY.confidence_half_width(evidence) == half_width

    def test_global_prior_weight_must_be_positive(self):
        with pytest.raises(ValidationError):
            ScoringPolicy(global_prior_weight=0)

    def test_global_prior_rate_bounded(self):
        with pytest.raises(ValidationError):
            ScoringPolicy(global_prior_rate=1.5)


class TestLoadPolicy:
    def test_partial_yaml_keeps_defaults(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            "version: strict\ncomplete_docs_points: 4\nurgency_points:\n  emergent: 10\n",
            encoding="utf-8",
        )
        policy = load_policy(path)
        assert policy.version == "strict"
        assert policy.complete_docs_points == 4
        assert policy.urgency_points == {"emergent": 10}
        assert policy.incomplete_docs_points == DEFAULT_POLICY.incomplete_docs_points

    def test_policy_key_is_unwrapped(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text("policy:\n  global_prior_rate: 0.5\n", encoding="utf-8")
        assert load_policy(path).global_prior_rate == 0.5

    def test_empty_file_is_default(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text("", encoding="utf-8")
        assert load_policy(path) == ScoringPolicy()

    def test_shipped_policy_matches_defaults(self):
        policy = load_policy(REPO_ROOT / "pa_dagster" / "configs" / "scoring_policy.yaml")
        assert policy.version == "2025-default"
        assert policy.model_dump(exclude={"version"}) == DEFAULT_POLICY.model_dump(
            exclude={"version"}
        )

    def test_policy_changes_score(self, tmp_path: Path):
        path = tmp_path / "policy.yaml"
        path.write_text("global_prior_rate: 0.5\n", encoding="utf-8")
        request = RiskScoreRequest(
            diagnosis_code="R51.9", treatment_code="XYZ", insurance_provider="Acme Health"
        )
        aggregator = InMemoryOutcomeAggregator([])

        default_score = ApprovalRiskCalculator(aggregator).score(request)
        custom_score = ApprovalRiskCalculator(aggregator, policy=load_policy(path)).score(request)

        assert default_score.score - custom_score.score == 20
        assert custom_score.details["policy_version"] == "default"
