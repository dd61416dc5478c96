"""Prior-Authorization Approval Risk Calculator.

This module implements the main calculator class that:
1. Classifies the diagnosis and treatment codes into categories
2. Pulls historical outcome aggregates at five granularities
3. Shrinks each observed rate toward the insurer baseline and blends them
4. Applies categorical and case-level point adjustments
5. Sizes a confidence band from the evidence volume
6. Estimates the insurer's processing time

Scores are correlational estimates drawn from the historical corpus. They
never approve or deny anything.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from pa_calculators.approval_risk_calculator.aggregator import OutcomeAggregator
from pa_calculators.approval_risk_calculator.classification import (
    CodeClassifier,
    TreatmentInfo,
    normalize_code,
)
from pa_calculators.approval_risk_calculator.models import (
    CompletionEstimate,
    HistoricalComparison,
    OutcomeAggregate,
    OutcomeFilter,
    RateComparison,
    RiskScoreRequest,
    RiskScoreResult,
    ScoreComponent,
)
from pa_calculators.approval_risk_calculator.policy import (
    DEFAULT_POLICY,
    GranularityPolicy,
    ScoringPolicy,
)

logger = logging.getLogger(__name__)

# Factor text and improvement suggestions, keyed by the value that fired.
# Whether the text lands in positive or negative factors follows the sign
# of the policy's points.
DIAGNOSIS_FACTORS: dict[str, tuple[str, list[str]]] = {
    "oncology": ("Oncology diagnosis - typically prioritized for approval", []),
    "cardiology": ("Cardiology diagnosis - often medically urgent", []),
    "gastroenterology": ("Gastroenterology diagnosis - established coverage pathways", []),
    "orthopedic": (
        "Orthopedic cases often require conservative therapy first",
        ["Document conservative therapy attempts and imaging"],
    ),
    "dermatology": ("Dermatology treatments may face stricter formulary checks", []),
    "other": (
        "Limited historical data for this diagnosis category",
        ["Include supporting literature or specialty guidelines"],
    ),
}

COST_TIER_FACTORS: dict[str, tuple[str, list[str]]] = {
    "ultra_high": (
        "Ultra high-cost treatment - intensive review likely",
        [
            "Include detailed cost-benefit analysis",
            "Reference peer-reviewed studies on treatment efficacy",
        ],
    ),
    "very_high": ("Very high-cost treatment", ["Include letter of medical necessity"]),
    "high": (
        "High-cost specialty treatment",
        ["Document medical necessity and expected treatment goals"],
    ),
    "moderate": ("Moderate-cost treatment - standard utilization review", []),
}
LOW_COST_FACTOR = "Low-cost intervention - generally favorable"

TREATMENT_CATEGORY_FACTORS: dict[str, tuple[str, list[str]]] = {
    "imaging": ("Imaging requests are commonly approved when criteria met", []),
    "procedure": ("Procedural requests often require additional documentation", []),
    "therapy": (
        "Therapy requests often require step therapy documentation",
        ["Document home exercise program and prior therapy visits"],
    ),
    "lab": ("Low-complexity lab services are typically approved", []),
    "other": ("Treatment category unclear - may require manual review", []),
}

URGENCY_FACTORS = {
    "emergent": "Emergent request - expedited review",
    "urgent": "Urgent clinical need documented",
}


@dataclass(frozen=True)
class _Evidence:
    granularity: str
    aggregate: OutcomeAggregate
    smoothed_rate: float | None
    weight: float


def smoothed_rate(
    approved_count: int, total_count: int, prior_rate: float, prior_weight: float
) -> float:
    """Shrink an observed approval rate toward a prior.

    Returns ``prior_rate`` unchanged when there are no observations.
    """
    if total_count <= 0:
        return prior_rate
    return (approved_count + prior_rate * prior_weight) / (total_count + prior_weight)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ApprovalRiskCalculator:
    """Approval risk calculator for prior-authorization requests.

    Implements the scoring algorithm:
    1. Classify diagnosis (longest prefix) and treatment (table, then code shape)
    2. Aggregate history for {insurer, treatment}, {insurer, dx cat, tx cat},
       {insurer, dx cat}, {insurer, tx cat} and {insurer}
    3. Shrink each rate toward the insurer rate, blend with log-sample weights
    4. Add categorical and case-level points, clamp to [0, 100]
    5. Confidence band from total evidence volume
    6. Processing-day estimate

    Example:
        >>> aggregator = DuckDBOutcomeAggregator.from_path("prior_auth.duckdb")
        >>> calculator = ApprovalRiskCalculator(aggregator)
        >>> request = RiskScoreRequest(
        ...     diagnosis_code="C34.90",
        ...     treatment_code="J9271",
        ...     insurance_provider="Blue Cross Blue Shield",
        ...     has_prior_treatment=True,
        ... )
        >>> result = calculator.score(request)
        >>> print(f"Approval likelihood: {result.score}%")
    """

    def __init__(
        self,
        aggregator: OutcomeAggregator,
        policy: ScoringPolicy | None = None,
        classifier: CodeClassifier | None = None,
    ):
        """Initialize calculator.

        Args:
            aggregator: Historical outcome store (see aggregator.py)
            policy: Scoring constants; defaults to DEFAULT_POLICY
            classifier: Code classifier; defaults to the shipped reference tables
        """
        self._aggregator = aggregator
        self.policy = policy or DEFAULT_POLICY
        self.classifier = classifier or CodeClassifier()

    def _aggregate(self, **predicates: str) -> OutcomeAggregate:
        """Run one aggregate query, reporting any store failure as zero evidence."""
        try:
            return self._aggregator.aggregate(OutcomeFilter(**predicates))
        except Exception:
            logger.warning(
                "Outcome aggregate failed for %s; treating as zero evidence",
                predicates,
                exc_info=True,
            )
            return OutcomeAggregate.empty()

    def _blend_rates(
        self,
        evidence: list[tuple[str, OutcomeAggregate, GranularityPolicy]],
        insurer_aggregate: OutcomeAggregate,
    ) -> tuple[float, float, int, list[_Evidence]]:
        """Shrink and blend the granularity rates into one base rate.

        Returns:
            Tuple of (base rate, insurer prior rate, evidence volume, per-granularity detail)
        """
        policy = self.policy
        insurer_rate = insurer_aggregate.approval_rate
        if insurer_rate is None:
            insurer_rate = policy.global_prior_rate

        used: list[_Evidence] = []
        for granularity, aggregate, granularity_policy in evidence:
            if aggregate.total_count <= 0:
                used.append(_Evidence(granularity, aggregate, None, 0.0))
                continue
            used.append(
                _Evidence(
                    granularity=granularity,
                    aggregate=aggregate,
                    smoothed_rate=smoothed_rate(
                        aggregate.approved_count,
                        aggregate.total_count,
                        insurer_rate,
                        granularity_policy.prior_weight,
                    ),
                    weight=math.log10(aggregate.total_count + 1) * granularity_policy.log_weight,
                )
            )

        used.append(
            _Evidence("insurer", insurer_aggregate, insurer_rate, policy.insurer_baseline_weight)
        )
        used.append(
            _Evidence(
                "global_prior",
                OutcomeAggregate.empty(),
                policy.global_prior_rate,
                policy.global_prior_weight,
            )
        )

        weighted = [e for e in used if e.smoothed_rate is not None and e.weight > 0]
        weight_sum = sum(e.weight for e in weighted)
        base_rate = sum(e.smoothed_rate * e.weight for e in weighted) / weight_sum
        evidence_volume = sum(e.aggregate.total_count for e in used)

        return min(1.0, max(0.0, base_rate)), insurer_rate, evidence_volume, used

    def _categorical_adjustments(
        self,
        request: RiskScoreRequest,
        diagnosis_category: str,
        treatment: TreatmentInfo,
    ) -> list[ScoreComponent]:
        policy = self.policy
        components: list[ScoreComponent] = []

        def add(
            component_type: str,
            code: str,
            points: float,
            factor: str | None = None,
            suggestions: Sequence[str] = (),
        ) -> None:
            if not points:
                return
            components.append(
                ScoreComponent(
                    component_type=component_type,
                    component_code=code,
                    points=points,
                    factor=factor,
                    # Suggestions only accompany penalties
                    suggestions=list(suggestions) if points < 0 else [],
                )
            )

        # Diagnosis category
        points = policy.diagnosis_category_points.get(diagnosis_category, 0)
        factor, suggestions = DIAGNOSIS_FACTORS.get(diagnosis_category, (None, []))
        add("diagnosis_category", diagnosis_category, points, factor, suggestions)

        # Treatment cost tier
        tier = policy.cost_tier_for(treatment.typical_cost)
        if tier is not None:
            factor, suggestions = COST_TIER_FACTORS.get(
                tier.name, ("Higher-cost treatment", ["Include letter of medical necessity"])
            )
            add("cost_tier", tier.name, tier.points, factor, suggestions)
        elif treatment.typical_cost < policy.low_cost_below:
            add("cost_tier", "low", policy.low_cost_points, LOW_COST_FACTOR)

        # Treatment category
        points = policy.treatment_category_points.get(treatment.category, 0)
        factor, suggestions = TREATMENT_CATEGORY_FACTORS.get(treatment.category, (None, []))
        add("treatment_category", treatment.category, points, factor, suggestions)

        # Documentation completeness
        if request.has_complete_docs:
            add(
                "documentation",
                "complete",
                policy.complete_docs_points,
                "Complete documentation submitted",
            )
        else:
            add(
                "documentation",
                "incomplete",
                policy.incomplete_docs_points,
                "Incomplete documentation",
                [
                    "Ensure all supporting documents are attached",
                    "Include recent lab results and imaging reports",
                ],
            )

        # Prior treatment / step therapy
        if request.has_prior_treatment:
            add(
                "prior_treatment",
                "documented",
                policy.prior_treatment_points,
                "Prior treatment attempts documented",
            )
        elif (
            treatment.category == "medication"
            and treatment.typical_cost > policy.step_therapy_cost_threshold
        ):
            add(
                "prior_treatment",
                "missing_step_therapy",
                policy.no_prior_medication_points,
                "No prior treatment documented - step therapy likely required",
                ["Document failure of first-line treatments"],
            )
        elif treatment.category == "procedure":
            add(
                "prior_treatment",
                "missing_conservative_care",
                policy.no_prior_procedure_points,
                "No conservative care documented before procedure",
                ["Document conservative therapy or imaging findings"],
            )
        elif treatment.category == "therapy":
            add(
                "prior_treatment",
                "missing_conservative_history",
                policy.no_prior_therapy_points,
                "Conservative treatment history not documented",
                ["Document previous conservative treatment attempts"],
            )

        # Urgency
        urgency = request.urgency_level
        if urgency in policy.urgency_points:
            add("urgency", urgency, policy.urgency_points[urgency], URGENCY_FACTORS.get(urgency))

        # Patient age
        age = request.patient_age
        if age is not None:
            if age >= policy.senior_age and diagnosis_category in policy.senior_categories:
                add(
                    "patient_age",
                    "senior_high_risk",
                    policy.senior_points,
                    "Senior patient with high-risk diagnosis",
                )
            elif age < policy.pediatric_age:
                add(
                    "patient_age",
                    "pediatric",
                    policy.pediatric_points,
                    "Pediatric patient - often prioritized",
                )

        return components

    def _estimate_processing_days(
        self,
        request: RiskScoreRequest,
        treatment: TreatmentInfo,
        treatment_aggregate: OutcomeAggregate,
        insurer_aggregate: OutcomeAggregate,
    ) -> int:
        policy = self.policy

        days = policy.default_processing_days
        if insurer_aggregate.avg_processing_days is not None:
            days = insurer_aggregate.avg_processing_days
        if treatment_aggregate.avg_processing_days is not None:
            days = treatment_aggregate.avg_processing_days

        reduction = policy.urgency_day_reductions.get(request.urgency_level or "")
        if reduction:
            days = max(1.0, days - reduction)
        if not request.has_complete_docs:
            days += policy.incomplete_docs_extra_days
        if treatment.typical_cost > policy.high_cost_days_threshold:
            days += policy.high_cost_extra_days
        if treatment.category == "procedure":
            days += policy.procedure_extra_days

        return max(1, round_half_up(days))

    def score(self, request: RiskScoreRequest) -> RiskScoreResult:
        """Calculate the approval risk score for a single request.

        Args:
            request: Validated scoring request

        Returns:
            RiskScoreResult with score, confidence band, factors and audit trail
        """
        policy = self.policy
        insurer = request.insurance_provider
        treatment_code = normalize_code(request.treatment_code)

        # Step 1: Classify codes
        diagnosis_category = self.classifier.diagnosis_category(request.diagnosis_code)
        treatment = self.classifier.treatment_info(treatment_code)

        # Step 2: Historical aggregates, narrowest to broadest
        treatment_aggregate = self._aggregate(
            insurance_provider=insurer, treatment_code=treatment_code
        )
        combined_aggregate = self._aggregate(
            insurance_provider=insurer,
            diagnosis_category=diagnosis_category,
            treatment_category=treatment.category,
        )
        diagnosis_aggregate = self._aggregate(
            insurance_provider=insurer, diagnosis_category=diagnosis_category
        )
        treatment_category_aggregate = self._aggregate(
            insurance_provider=insurer, treatment_category=treatment.category
        )
        insurer_aggregate = self._aggregate(insurance_provider=insurer)

        # Step 3: Shrink and blend
        base_rate, insurer_rate, evidence_volume, evidence = self._blend_rates(
            [
                ("treatment", treatment_aggregate, policy.treatment),
                ("combined_category", combined_aggregate, policy.combined_category),
                ("diagnosis_category", diagnosis_aggregate, policy.diagnosis_category),
                ("treatment_category", treatment_category_aggregate, policy.treatment_category),
            ],
            insurer_aggregate,
        )

        # Step 4: Point adjustments
        components = self._categorical_adjustments(request, diagnosis_category, treatment)
        raw_score = base_rate * 100 + sum(c.points for c in components)
        score = round_half_up(min(100.0, max(0.0, raw_score)))

        # Step 5: Confidence band
        half_width = policy.confidence_half_width(evidence_volume)
        confidence_low = max(0, score - half_width)
        confidence_high = min(100, score + half_width)

        # Step 6: Processing time
        estimated_days = self._estimate_processing_days(
            request, treatment, treatment_aggregate, insurer_aggregate
        )

        positive_factors = [c.factor for c in components if c.points > 0 and c.factor]
        negative_factors = [c.factor for c in components if c.points < 0 and c.factor]
        suggestions = list(dict.fromkeys(s for c in components for s in c.suggestions))

        logger.debug(
            "Scored %s/%s/%s: score=%s base_rate=%.4f evidence=%s",
            request.diagnosis_code,
            treatment_code,
            insurer,
            score,
            base_rate,
            evidence_volume,
        )

        return RiskScoreResult(
            score=score,
            confidence_low=confidence_low,
            confidence_high=confidence_high,
            positive_factors=positive_factors,
            negative_factors=negative_factors,
            improvement_suggestions=suggestions,
            historical_approval_rate=base_rate,
            estimated_processing_days=estimated_days,
            components=components,
            details={
                "policy_version": policy.version,
                "diagnosis_category": diagnosis_category,
                "treatment_category": treatment.category,
                "treatment_cost": treatment.typical_cost,
                "treatment_source": treatment.source,
                "insurer_rate": insurer_rate,
                "evidence_volume": evidence_volume,
                "confidence_half_width": half_width,
                "granularities": {
                    e.granularity: {
                        "total_count": e.aggregate.total_count,
                        "approved_count": e.aggregate.approved_count,
                        "smoothed_rate": e.smoothed_rate,
                        "weight": e.weight,
                    }
                    for e in evidence
                },
                "base_rate": base_rate,
                "raw_score": raw_score,
            },
        )

    def score_batch(self, requests: list[RiskScoreRequest]) -> list[RiskScoreResult]:
        """Calculate scores for multiple requests.

        Returns:
            List of results in same order as inputs
        """
        return [self.score(request) for request in requests]

    def historical_comparison(
        self, insurance_provider: str, treatment_code: str, diagnosis_code: str
    ) -> HistoricalComparison:
        """Approval percentages for the same treatment, diagnosis category and insurer.

        Percentages are rounded to one decimal; empty groups report 0.0.
        """
        category = self.classifier.diagnosis_category(diagnosis_code)

        def as_comparison(aggregate: OutcomeAggregate, category: str | None = None):
            rate = aggregate.approval_rate
            return RateComparison(
                approval_rate=round(rate * 100, 1) if rate is not None else 0.0,
                sample_size=aggregate.total_count,
                category=category,
            )

        return HistoricalComparison(
            same_treatment=as_comparison(
                self._aggregate(
                    insurance_provider=insurance_provider,
                    treatment_code=normalize_code(treatment_code),
                )
            ),
            same_category=as_comparison(
                self._aggregate(
                    insurance_provider=insurance_provider, diagnosis_category=category
                ),
                category,
            ),
            overall_insurer=as_comparison(self._aggregate(insurance_provider=insurance_provider)),
        )

    def estimate_completion_time(
        self, insurance_provider: str, urgency_level: str = "routine"
    ) -> CompletionEstimate:
        """Typical, fastest and slowest processing days for an insurer at an urgency level."""
        aggregate = self._aggregate(
            insurance_provider=insurance_provider, urgency_level=urgency_level
        )
        avg_days = aggregate.avg_processing_days or 12
        min_days = aggregate.min_processing_days or 3
        max_days = aggregate.max_processing_days or 21

        return CompletionEstimate(
            days=max(1, round_half_up(avg_days)),
            min_days=max(1, min_days),
            max_days=max(1, max_days),
        )
