import pytest

from pa_calculators.approval_risk_calculator.request_processing import (
    coerce_bool,
    normalize_urgency,
    rows_to_requests,
)


def make_row(request_id="R1", urgency="routine", **overrides):
    row = {
        "request_id": request_id,
        "diagnosis_code": "C34.90",
        "treatment_code": "J9271",
        "insurance_provider": "Aetna",
        "patient_age": 61,
        "has_complete_docs": True,
        "has_prior_treatment": False,
        "urgency_level": urgency,
    }
    row.update(overrides)
    return tuple(row.values())


class TestNormalizers:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, "routine"), ("Routine", "routine"), ("STAT", "emergent"), (" expedited ", "urgent")],
    )
    def test_normalize_urgency(self, value, expected):
        assert normalize_urgency(value) == expected

    def test_unknown_urgency(self):
        assert normalize_urgency("asap-ish") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(None, True), (1, True), (0, False), ("Y", True), ("no", False), ("maybe", True)],
    )
    def test_coerce_bool(self, value, expected):
        assert coerce_bool(value, default=True) is expected


class TestRowsToRequests:
    def test_valid_rows(self):
        requests, stats = rows_to_requests([make_row("R1"), make_row("R2", urgency="URGENT")])
        assert [rid for rid, _ in requests] == ["R1", "R2"]
        assert requests[1][1].urgency_level == "urgent"
        assert stats["skipped"] == 0

    def test_invalid_urgency_skipped(self):
        requests, stats = rows_to_requests([make_row("R1"), make_row("R2", urgency="later")])
        assert [rid for rid, _ in requests] == ["R1"]
        assert stats["skipped"] == 1
        assert stats["invalid_urgency_values"] == {"later": 1}

    def test_invalid_urgency_coerced(self):
        requests, stats = rows_to_requests(
            [make_row("R1", urgency="later")], invalid_urgency="coerce", coerce_urgency="urgent"
        )
        assert requests[0][1].urgency_level == "urgent"
        assert stats["skipped"] == 0

    def test_missing_required_field_skipped(self):
        requests, stats = rows_to_requests([make_row("R1", insurance_provider=None)])
        assert requests == []
        assert stats["invalid_rows"] == 1

    def test_bad_age_skipped(self):
        requests, stats = rows_to_requests([make_row("R1", patient_age="old")])
        assert requests == []
        assert stats["invalid_rows"] == 1

    def test_bad_options_rejected(self):
        with pytest.raises(ValueError):
            rows_to_requests([], invalid_urgency="error")
        with pytest.raises(ValueError):
            rows_to_requests([], invalid_urgency="coerce")
