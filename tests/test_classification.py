"""Tests for diagnosis/treatment code classification and the reference tables."""

from pathlib import Path

import pytest

from pa_calculators.approval_risk_calculator import table_loader
from pa_calculators.approval_risk_calculator.classification import (
    UNCLASSIFIED_CATEGORY,
    UNCLASSIFIED_TREATMENT_COST,
    CodeClassifier,
    normalize_code,
)


@pytest.fixture(scope="module")
def classifier():
    return CodeClassifier()


class TestDiagnosisCategory:
    @pytest.mark.parametrize(
        "code,category",
        [
            ("C34.90", "oncology"),
            ("c50.919", "oncology"),
            ("M05.79", "rheumatology"),
            ("M06.9", "rheumatology"),
            ("L40.50", "dermatology"),
            ("K50.90", "gastroenterology"),
            ("I25.10", "cardiology"),
            ("E11.9", "endocrinology"),
            ("G35", "neurology"),
            ("M54.5", "orthopedic"),
            ("M17.11", "orthopedic"),
            ("J45.909", "pulmonology"),
            ("N18.6", "nephrology"),
        ],
    )
    def test_known_prefixes(self, classifier, code, category):
        assert classifier.diagnosis_category(code) == category

    def test_unmatched_code_is_other(self, classifier):
        assert classifier.diagnosis_category("R51.9") == UNCLASSIFIED_CATEGORY
        assert classifier.diagnosis_category("") == UNCLASSIFIED_CATEGORY

    def test_longest_prefix_wins(self, tmp_path: Path):
        (tmp_path / "diagnosis_prefixes.csv").write_text(
            "prefix,category\nM,general\nM54,orthopedic\n", encoding="utf-8"
        )
        (tmp_path / "treatment_codes.csv").write_text(
            "code,category,typical_cost,name\n", encoding="utf-8"
        )
        (tmp_path / "treatment_patterns.csv").write_text(
            "pattern,category,typical_cost\n", encoding="utf-8"
        )
        custom = CodeClassifier(tmp_path)
        assert custom.diagnosis_category("M54.5") == "orthopedic"
        assert custom.diagnosis_category("M17.11") == "general"


class TestTreatmentInfo:
    def test_curated_code(self, classifier):
        info = classifier.treatment_info("J9271")
        assert info.category == "medication"
        assert info.typical_cost == 15000.0
        assert info.source == "table"
        assert info.name == "Pembrolizumab (Keytruda)"

    def test_curated_code_is_normalized(self, classifier):
        assert classifier.treatment_info(" j9271 ").source == "table"

    @pytest.mark.parametrize(
        "code,category,cost",
        [
            ("J9999", "medication", 9000.0),
            ("Q5103", "medication", 9000.0),
            ("1234567", "medication", 4500.0),
            ("97530", "therapy", 200.0),
            ("72148", "imaging", 2200.0),
            ("85025", "lab", 250.0),
            ("12345", "procedure", 6000.0),
        ],
    )
    def test_shape_fallback(self, classifier, code, category, cost):
        info = classifier.treatment_info(code)
        assert info.source == "pattern"
        assert info.category == category
        assert info.typical_cost == cost

    def test_unknown_code_gets_default(self, classifier):
        info = classifier.treatment_info("XYZ")
        assert info.category == UNCLASSIFIED_CATEGORY
        assert info.typical_cost == UNCLASSIFIED_TREATMENT_COST
        assert info.source == "default"

    def test_curated_treatments(self, classifier):
        treatments = classifier.curated_treatments()
        assert len(treatments) == 20
        assert treatments["27447"].category == "procedure"
        assert all(t.source == "table" for t in treatments.values())


class TestTableLoader:
    def test_codes_stay_text(self):
        codes = table_loader.load_treatment_codes()
        assert "70553" in codes
        assert codes["70553"]["category"] == "imaging"

    def test_prefix_order_preserved(self):
        prefixes = table_loader.load_diagnosis_prefixes()
        assert prefixes[0] == ("C", "oncology")

    def test_missing_table_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            table_loader.load_diagnosis_prefixes(tmp_path)

    def test_clear_cache(self):
        table_loader.load_treatment_patterns()
        table_loader.clear_cache()
        assert table_loader._CACHE == {}


def test_normalize_code():
    assert normalize_code(" c34.90 ") == "C34.90"
