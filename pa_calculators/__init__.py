"""PA calculators - Prior-authorization scoring calculator implementations.

Available calculators:
    - ApprovalRiskCalculator: approval likelihood for PA requests
"""

from pa_calculators.approval_risk_calculator import (
    ApprovalRiskCalculator,
    RiskScoreRequest,
    RiskScoreResult,
)

__all__ = ["ApprovalRiskCalculator", "RiskScoreRequest", "RiskScoreResult"]
