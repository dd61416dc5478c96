"""Tunable policy parameters for approval risk scoring.

Every constant the engine uses lives here so that a policy can be swapped
without touching scoring logic. Policies can be loaded from YAML:

    >>> policy = load_policy("pa_dagster/configs/scoring_policy.yaml")
    >>> calculator = ApprovalRiskCalculator(aggregator, policy=policy)
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class GranularityPolicy(BaseModel):
    """Smoothing and blending weights for one aggregate granularity.

    Attributes:
        prior_weight: Pseudo-count pulling the observed rate toward the insurer rate
        log_weight: Multiplier on log10(sample_size + 1) in the weighted blend
    """

    prior_weight: float = Field(ge=0.0)
    log_weight: float = Field(ge=0.0)


class CostTier(BaseModel):
    """Cost tier applied when the treatment's typical cost exceeds ``above``."""

    name: str
    above: float
    points: float


class ConfidenceStep(BaseModel):
    """Half-width used when evidence volume exceeds ``above``."""

    above: int
    half_width: int = Field(ge=0)


class ScoringPolicy(BaseModel):
    version: str = "default"

    global_prior_rate: float = Field(default=0.70, ge=0.0, le=1.0)
    global_prior_weight: float = Field(default=0.8, gt=0.0)
    insurer_baseline_weight: float = Field(default=1.4, ge=0.0)

    treatment: GranularityPolicy = GranularityPolicy(prior_weight=12, log_weight=3.0)
    combined_category: GranularityPolicy = GranularityPolicy(prior_weight=10, log_weight=2.2)
    diagnosis_category: GranularityPolicy = GranularityPolicy(prior_weight=8, log_weight=1.8)
    treatment_category: GranularityPolicy = GranularityPolicy(prior_weight=8, log_weight=1.6)

    diagnosis_category_points: dict[str, float] = Field(
        default_factory=lambda: {
            "oncology": 6,
            "cardiology": 4,
            "gastroenterology": 2,
            "orthopedic": -2,
            "dermatology": -2,
            "other": -3,
        }
    )

    # Checked highest first; the first tier whose threshold is exceeded wins.
    cost_tiers: list[CostTier] = Field(
        default_factory=lambda: [
            CostTier(name="ultra_high", above=50000, points=-14),
            CostTier(name="very_high", above=20000, points=-10),
            CostTier(name="high", above=10000, points=-6),
            CostTier(name="moderate", above=5000, points=-3),
        ]
    )
    low_cost_below: float = 500
    low_cost_points: float = 6

    treatment_category_points: dict[str, float] = Field(
        default_factory=lambda: {
            "imaging": 2,
            "procedure": -2,
            "therapy": -4,
            "lab": 4,
            "other": -3,
        }
    )

    complete_docs_points: float = 8
    incomplete_docs_points: float = -12

    prior_treatment_points: float = 6
    step_therapy_cost_threshold: float = 5000
    no_prior_medication_points: float = -9
    no_prior_procedure_points: float = -5
    no_prior_therapy_points: float = -4

    urgency_points: dict[str, float] = Field(
        default_factory=lambda: {"emergent": 6, "urgent": 3}
    )

    senior_age: int = 65
    senior_categories: list[str] = Field(default_factory=lambda: ["oncology", "cardiology"])
    senior_points: float = 2
    pediatric_age: int = 18
    pediatric_points: float = 3

    confidence_steps: list[ConfidenceStep] = Field(
        default_factory=lambda: [
            ConfidenceStep(above=100, half_width=6),
            ConfidenceStep(above=50, half_width=8),
            ConfidenceStep(above=20, half_width=10),
        ]
    )
    confidence_default_half_width: int = Field(default=12, ge=0)

    default_processing_days: float = Field(default=12, ge=1)
    urgency_day_reductions: dict[str, float] = Field(
        default_factory=lambda: {"urgent": 3, "emergent": 6}
    )
    incomplete_docs_extra_days: float = 4
    high_cost_days_threshold: float = 20000
    high_cost_extra_days: float = 3
    procedure_extra_days: float = 2

    def cost_tier_for(self, cost: float) -> CostTier | None:
        for tier in sorted(self.cost_tiers, key=lambda t: t.above, reverse=True):
            if cost > tier.above:
                return tier
        return None

    def confidence_half_width(self, evidence_volume: int) -> int:
        for step in sorted(self.confidence_steps, key=lambda s: s.above, reverse=True):
            if evidence_volume > step.above:
                return step.half_width
        return self.confidence_default_half_width


DEFAULT_POLICY = ScoringPolicy()


def load_policy(path: str | Path) -> ScoringPolicy:
    """Load a scoring policy from a YAML file.

    Keys missing from the file fall back to the defaults. A top-level
    ``policy:`` key is unwrapped if present.

    Args:
        path: Path to the YAML file

    Returns:
        Validated ScoringPolicy
    """
    with open(Path(path).expanduser(), encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if "policy" in data:
        data = data["policy"] or {}

    return ScoringPolicy.model_validate(data)
