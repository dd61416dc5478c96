"""Prior-Authorization Approval Risk Calculator.

Estimates approval likelihood for a diagnosis/treatment/insurer combination
from a historical outcomes corpus. Classification tables ship in
reference_tables/.
"""

from pa_calculators.approval_risk_calculator.aggregator import (
    CachedOutcomeAggregator,
    DuckDBOutcomeAggregator,
    InMemoryOutcomeAggregator,
)
from pa_calculators.approval_risk_calculator.calculator import ApprovalRiskCalculator
from pa_calculators.approval_risk_calculator.models import (
    HistoricalCase,
    RiskScoreRequest,
    RiskScoreResult,
)
from pa_calculators.approval_risk_calculator.policy import ScoringPolicy, load_policy

__all__ = [
    "ApprovalRiskCalculator",
    "CachedOutcomeAggregator",
    "DuckDBOutcomeAggregator",
    "HistoricalCase",
    "InMemoryOutcomeAggregator",
    "RiskScoreRequest",
    "RiskScoreResult",
    "ScoringPolicy",
    "load_policy",
]
