from __future__ import annotations

from typing import Any, Iterable

from pydantic import ValidationError

from pa_calculators.approval_risk_calculator.models import RiskScoreRequest

URGENCY_ALIASES = {
    "ROUTINE": "routine",
    "STANDARD": "routine",
    "URGENT": "urgent",
    "EXPEDITED": "urgent",
    "EMERGENT": "emergent",
    "EMERGENCY": "emergent",
    "STAT": "emergent",
}

TRUE_VALUES = {"1", "TRUE", "T", "Y", "YES"}
FALSE_VALUES = {"0", "FALSE", "F", "N", "NO"}


def coerce_bool(value: Any, default: bool) -> bool:
    """Coerce 0/1, 'Y'/'N', 'true'/'false' and friends to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().upper()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return default


def normalize_urgency(value: Any) -> str | None:
    """Normalize urgency to routine/urgent/emergent, or return None if unrecognized.

    A NULL urgency is read as 'routine'.
    """
    if value is None:
        return "routine"
    return URGENCY_ALIASES.get(str(value).strip().upper())


def rows_to_requests(
    rows: Iterable[tuple[Any, ...]],
    *,
    invalid_urgency: str = "skip",
    coerce_urgency: str | None = None,
) -> tuple[list[tuple[str, RiskScoreRequest]], dict[str, Any]]:
    """
    Convert raw database rows into (request_id, RiskScoreRequest) pairs with validation.

    Expected row format:
    (request_id, diagnosis_code, treatment_code, insurance_provider, patient_age,
     has_complete_docs, has_prior_treatment, urgency_level)
    """
    requests: list[tuple[str, RiskScoreRequest]] = []
    skipped = 0
    invalid_urgency_values: dict[str, int] = {}
    invalid_rows = 0

    if invalid_urgency not in {"skip", "coerce"}:
        raise ValueError("invalid_urgency must be one of: skip, coerce")

    if invalid_urgency == "coerce":
        if coerce_urgency not in {"routine", "urgent", "emergent"}:
            raise ValueError(
                "coerce_urgency must be routine, urgent or emergent when invalid_urgency='coerce'"
            )

    for (
        request_id,
        diagnosis_code,
        treatment_code,
        insurance_provider,
        patient_age,
        has_complete_docs,
        has_prior_treatment,
        urgency_level,
    ) in rows:
        urgency = normalize_urgency(urgency_level)
        if urgency is None:
            raw = str(urgency_level)
            invalid_urgency_values[raw] = invalid_urgency_values.get(raw, 0) + 1
            if invalid_urgency == "skip":
                skipped += 1
                continue
            urgency = str(coerce_urgency)

        try:
            request = RiskScoreRequest(
                diagnosis_code=str(diagnosis_code or ""),
                treatment_code=str(treatment_code or ""),
                insurance_provider=str(insurance_provider or ""),
                patient_age=int(patient_age) if patient_age is not None else None,
                has_complete_docs=coerce_bool(has_complete_docs, default=True),
                has_prior_treatment=coerce_bool(has_prior_treatment, default=False),
                urgency_level=urgency,
            )
        except (ValidationError, ValueError, TypeError):
            invalid_rows += 1
            skipped += 1
            continue

        requests.append((str(request_id), request))

    return requests, {
        "skipped": skipped,
        "invalid_rows": invalid_rows,
        "invalid_urgency_values": invalid_urgency_values,
    }
