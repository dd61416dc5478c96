from __future__ import annotations

import csv
import json
from pathlib import Path

import duckdb
import yaml

from pa_calculators.approval_risk_calculator.corpus import (
    generate_historical_cases,
    write_cases_to_duckdb,
)
from pa_calculators.approval_risk_calculator.duckdb_to_csv import score_from_duckdb_to_csv


def _build_db(duckdb_path: Path, rows: list[tuple]) -> None:
    con = duckdb.connect(str(duckdb_path))
    try:
        write_cases_to_duckdb(con, generate_historical_cases(count=1500, seed=21))
        con.execute("CREATE SCHEMA main_intermediate")
        con.execute(
            """
            CREATE TABLE main_intermediate.pa_risk_input (
                request_id VARCHAR,
                diagnosis_code VARCHAR,
                treatment_code VARCHAR,
                insurance_provider VARCHAR,
                patient_age INTEGER,
                has_complete_docs BOOLEAN,
                has_prior_treatment BOOLEAN,
                urgency_level VARCHAR
            )
            """
        )
        con.executemany(
            "INSERT INTO main_intermediate.pa_risk_input VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
    finally:
        con.close()


def test_duckdb_to_csv_runner_smoke(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "prior_auth.duckdb"
    out_csv = tmp_path / "scores.csv"
    _build_db(
        duckdb_path,
        [
            ("R1", "C34.90", "J9271", "Blue Cross Blue Shield", 58, True, True, "routine"),
            ("R2", "M54.5", "97110", "Aetna", 44, False, False, "urgent"),
        ],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
    )

    assert written == 2
    assert out_csv.exists()

    with out_csv.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert [r["request_id"] for r in rows] == ["R1", "R2"]

    for r in rows:
        score = int(r["score"])
        assert 0 <= int(r["confidence_low"]) <= score <= int(r["confidence_high"]) <= 100
        assert 0.0 <= float(r["historical_approval_rate"]) <= 1.0
        assert int(r["estimated_processing_days"]) >= 1
        assert isinstance(json.loads(r["positive_factors"]), list)
        assert r["policy_version"] == "default"

    # Incomplete docs always come with suggestions
    assert json.loads(rows[1]["improvement_suggestions"])

    details = yaml.safe_load((tmp_path / "yaml_details" / "R1.yml").read_text(encoding="utf-8"))
    assert details["request_id"] == "R1"
    assert details["details"]["diagnosis_category"] == "oncology"


def test_duckdb_to_csv_runner_skips_invalid_urgency(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "prior_auth.duckdb"
    out_csv = tmp_path / "scores.csv"
    _build_db(
        duckdb_path,
        [
            ("GOOD", "C34.90", "J9271", "Aetna", 58, True, True, "routine"),
            ("BAD", "C34.90", "J9271", "Aetna", 58, True, True, "whenever"),
        ],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
        invalid_urgency="skip",
    )

    assert written == 1

    with out_csv.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert [r["request_id"] for r in rows] == ["GOOD"]


def test_duckdb_to_csv_runner_coerces_invalid_urgency(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "prior_auth.duckdb"
    out_csv = tmp_path / "scores.csv"
    _build_db(
        duckdb_path,
        [
            ("R1", "C34.90", "J9271", "Aetna", 58, True, True, "whenever"),
            ("R2", "C34.90", "J9271", "Aetna", 58, True, True, None),
        ],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
        invalid_urgency="coerce",
        coerce_urgency="emergent",
        detail_files=0,
    )

    assert written == 2
    assert not list((tmp_path / "yaml_details").glob("*.yml"))
