"""Data models for the approval risk calculator."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

URGENCY_PATTERN = "^(routine|urgent|emergent)$"


class HistoricalCase(BaseModel):
    """One historical prior-authorization outcome from the seed corpus.

    Attributes:
        diagnosis_code: ICD-10-CM code as submitted (e.g. 'C34.90')
        diagnosis_category: Category derived from the code prefix
        treatment_code: HCPCS/CPT code as submitted (e.g. 'J9271')
        treatment_category: Category derived from the treatment table
        insurance_provider: Insurer name, matched exactly
        outcome: 'approved' or 'denied'
        denial_reason: Reason text, present only when denied
        processing_days: Days from submission to decision (>= 1)
        year, month: Provenance only, never used in scoring
    """

    model_config = ConfigDict(frozen=True)

    diagnosis_code: str
    diagnosis_category: str
    treatment_code: str
    treatment_category: str
    insurance_provider: str
    patient_age: int | None = Field(default=None, ge=0, le=130)
    patient_gender: str | None = Field(default=None, pattern="^[MF]$")
    outcome: str = Field(pattern="^(approved|denied)$")
    denial_reason: str | None = None
    processing_days: int = Field(ge=1)
    had_prior_treatment: bool = False
    documentation_complete: bool = True
    urgency_level: str = Field(default="routine", pattern=URGENCY_PATTERN)
    year: int | None = None
    month: int | None = Field(default=None, ge=1, le=12)

    @model_validator(mode="after")
    def _denial_reason_matches_outcome(self) -> "HistoricalCase":
        if self.outcome == "approved" and self.denial_reason is not None:
            raise ValueError("approved cases cannot carry a denial_reason")
        if self.outcome == "denied" and not self.denial_reason:
            raise ValueError("denied cases require a denial_reason")
        return self


class RiskScoreRequest(BaseModel):
    """Input for a single approval risk score.

    Accepts snake_case field names or the camelCase names used in JSON
    request bodies (``diagnosisCode``, ``hasCompleteDocs``, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    diagnosis_code: str = Field(min_length=1)
    treatment_code: str = Field(min_length=1)
    insurance_provider: str = Field(min_length=1)
    patient_age: int | None = Field(default=None, ge=0, le=130)
    has_complete_docs: bool = True
    has_prior_treatment: bool = False
    urgency_level: str | None = Field(default="routine", pattern=URGENCY_PATTERN)


class ScoreComponent(BaseModel):
    """Individual point adjustment for the audit trail.

    Attributes:
        component_type: Rule family that fired
        component_code: Value that triggered it (e.g. 'oncology', 'high', 'emergent')
        points: Points added to (or subtracted from) the score
        factor: Human-readable factor text, if the rule has one
        suggestions: Improvement suggestions attached to the rule
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    component_type: str = Field(
        ...,
        pattern=(
            "^(diagnosis_category|cost_tier|treatment_category|documentation"
            "|prior_treatment|urgency|patient_age)$"
        ),
    )
    component_code: str
    points: float
    factor: str | None = None
    suggestions: list[str] = Field(default_factory=list)


class RiskScoreResult(BaseModel):
    """Output from an approval risk score calculation.

    Serialize with ``model_dump(by_alias=True)`` to get the camelCase
    field names the portal expects.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    score: int = Field(ge=0, le=100)
    confidence_low: int = Field(ge=0, le=100)
    confidence_high: int = Field(ge=0, le=100)
    positive_factors: list[str] = Field(default_factory=list)
    negative_factors: list[str] = Field(default_factory=list)
    improvement_suggestions: list[str] = Field(default_factory=list)
    historical_approval_rate: float = Field(ge=0.0, le=1.0)
    estimated_processing_days: int = Field(ge=1)
    components: list[ScoreComponent] = Field(default_factory=list)
    details: dict = Field(default_factory=dict)


class OutcomeFilter(BaseModel):
    """Conjunction of equality predicates over the historical corpus."""

    model_config = ConfigDict(frozen=True)

    insurance_provider: str | None = None
    treatment_code: str | None = None
    diagnosis_category: str | None = None
    treatment_category: str | None = None
    urgency_level: str | None = None

    def predicates(self) -> dict[str, str]:
        """Return only the predicates that are set, keyed by column name."""
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def cache_key(self) -> tuple[tuple[str, str], ...]:
        return tuple(sorted(self.predicates().items()))


class OutcomeAggregate(BaseModel):
    """Approved/total counts and processing-time stats for one filter.

    The processing-day statistics are None when ``total_count`` is 0.
    """

    total_count: int = Field(default=0, ge=0)
    approved_count: int = Field(default=0, ge=0)
    avg_processing_days: float | None = None
    min_processing_days: int | None = None
    max_processing_days: int | None = None

    @classmethod
    def empty(cls) -> "OutcomeAggregate":
        return cls()

    @property
    def approval_rate(self) -> float | None:
        if self.total_count <= 0:
            return None
        return self.approved_count / self.total_count


class RateComparison(BaseModel):
    approval_rate: float
    sample_size: int
    category: str | None = None


class HistoricalComparison(BaseModel):
    """Approval percentages for the same treatment, category and insurer."""

    same_treatment: RateComparison
    same_category: RateComparison
    overall_insurer: RateComparison


class CompletionEstimate(BaseModel):
    days: int = Field(ge=1)
    min_days: int = Field(ge=1)
    max_days: int = Field(ge=1)
