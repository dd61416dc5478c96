"""Diagnosis and treatment code classification.

Every code resolves to exactly one category:

    - Diagnosis codes: longest matching prefix from diagnosis_prefixes.csv,
      ties broken by table order, otherwise "other".
    - Treatment codes: exact match in treatment_codes.csv, then the first
      matching shape rule in treatment_patterns.csv, otherwise "other"
      with a placeholder cost.
"""

from dataclasses import dataclass
from pathlib import Path

from pa_calculators.approval_risk_calculator.table_loader import (
    DATA_DIR,
    load_diagnosis_prefixes,
    load_treatment_codes,
    load_treatment_patterns,
)

UNCLASSIFIED_CATEGORY = "other"
UNCLASSIFIED_TREATMENT_COST = 1500.0


@dataclass(frozen=True)
class TreatmentInfo:
    category: str
    typical_cost: float
    source: str
    name: str | None = None


def normalize_code(code: str) -> str:
    """Uppercase and strip surrounding whitespace; dots are kept."""
    return (code or "").strip().upper()


class CodeClassifier:
    """Resolve diagnosis and treatment codes to scoring categories.

    Example:
        >>> classifier = CodeClassifier()
        >>> classifier.diagnosis_category("C34.90")
        'oncology'
        >>> classifier.treatment_info("J9271").typical_cost
        15000.0
    """

    def __init__(self, tables_dir: Path = DATA_DIR):
        prefixes = load_diagnosis_prefixes(tables_dir)
        # Longest prefix first; sorted() is stable so file order breaks ties
        self._prefixes = sorted(prefixes, key=lambda item: len(item[0]), reverse=True)
        self._treatment_codes = load_treatment_codes(tables_dir)
        self._treatment_patterns = load_treatment_patterns(tables_dir)

    def diagnosis_category(self, code: str) -> str:
        normalized = normalize_code(code)
        for prefix, category in self._prefixes:
            if normalized.startswith(prefix):
                return category
        return UNCLASSIFIED_CATEGORY

    def treatment_info(self, code: str) -> TreatmentInfo:
        normalized = normalize_code(code)

        curated = self._treatment_codes.get(normalized)
        if curated:
            return TreatmentInfo(
                category=curated["category"],
                typical_cost=curated["typical_cost"],
                source="table",
                name=curated.get("name"),
            )

        for pattern, category, cost in self._treatment_patterns:
            if pattern.search(normalized):
                return TreatmentInfo(category=category, typical_cost=cost, source="pattern")

        return TreatmentInfo(
            category=UNCLASSIFIED_CATEGORY,
            typical_cost=UNCLASSIFIED_TREATMENT_COST,
            source="default",
        )

    def curated_treatments(self) -> dict[str, TreatmentInfo]:
        """Return the curated treatment table keyed by code."""
        return {code: self.treatment_info(code) for code in self._treatment_codes}
