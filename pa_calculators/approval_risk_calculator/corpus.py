"""Synthetic historical PA corpus for seeding the outcome store.

Generates a deterministic (seeded) set of HistoricalCase records whose
outcomes follow a simple pattern: insurer base rate, a bump for oncology,
a penalty for specialty-cost treatments, and bumps for complete
documentation and prior treatment. Categories are derived with the same
CodeClassifier the calculator uses, so corpus and scoring always agree.
"""

import logging
import random

import duckdb
import polars as pl

from pa_calculators.approval_risk_calculator.aggregator import (
    HISTORICAL_CASE_SCHEMA,
    HISTORICAL_CASES_TABLE,
)
from pa_calculators.approval_risk_calculator.classification import CodeClassifier
from pa_calculators.approval_risk_calculator.models import HistoricalCase

logger = logging.getLogger(__name__)

DEFAULT_CORPUS_SIZE = 10500

DIAGNOSIS_CODES = [
    ("C34.90", "Lung cancer, unspecified"),
    ("C50.919", "Breast cancer, unspecified"),
    ("C61", "Prostate cancer"),
    ("C18.9", "Colon cancer"),
    ("C25.9", "Pancreatic cancer"),
    ("M06.9", "Rheumatoid arthritis"),
    ("M05.79", "Rheumatoid arthritis with involvement"),
    ("L40.50", "Psoriatic arthritis"),
    ("K50.90", "Crohn's disease"),
    ("K51.90", "Ulcerative colitis"),
    ("I25.10", "Coronary artery disease"),
    ("I50.9", "Heart failure"),
    ("I48.91", "Atrial fibrillation"),
    ("E11.9", "Type 2 diabetes mellitus"),
    ("E10.9", "Type 1 diabetes mellitus"),
    ("G35", "Multiple sclerosis"),
    ("G20", "Parkinson's disease"),
    ("G43.909", "Migraine, unspecified"),
    ("M54.5", "Low back pain"),
    ("M17.11", "Primary osteoarthritis, right knee"),
    ("M75.10", "Rotator cuff syndrome"),
    ("R51.9", "Headache, unspecified"),
    ("J45.909", "Asthma, unspecified"),
    ("J44.9", "COPD, unspecified"),
    ("N18.6", "End-stage renal disease"),
]

# (name, base approval rate, average processing days)
INSURERS = [
    ("Blue Cross Blue Shield", 0.72, 12),
    ("Aetna", 0.68, 14),
    ("UnitedHealthcare", 0.65, 15),
    ("Cigna", 0.70, 11),
    ("Humana", 0.73, 10),
    ("Kaiser Permanente", 0.78, 8),
    ("Anthem", 0.67, 13),
    ("Molina Healthcare", 0.62, 16),
    ("Centene", 0.64, 14),
    ("Medicare", 0.80, 7),
]

DENIAL_REASONS = [
    "Medical necessity not established",
    "Insufficient documentation",
    "Prior authorization not obtained",
    "Service not covered under plan",
    "Out-of-network provider",
    "Step therapy requirement not met",
    "Experimental or investigational treatment",
    "Exceeded benefit limits",
    "Pre-existing condition exclusion",
    "Missing clinical documentation",
    "Alternative treatment available",
    "Not medically appropriate",
]

URGENCY_LEVELS = ["routine", "urgent", "emergent"]


def generate_historical_cases(
    count: int = DEFAULT_CORPUS_SIZE,
    seed: int = 42,
    classifier: CodeClassifier | None = None,
) -> list[HistoricalCase]:
    """Generate a synthetic historical corpus.

    Args:
        count: Number of cases to generate
        seed: RNG seed; the same seed always yields the same corpus
        classifier: Code classifier used to derive categories

    Returns:
        List of HistoricalCase records
    """
    if count < 0:
        raise ValueError("count must be non-negative")

    rng = random.Random(seed)
    classifier = classifier or CodeClassifier()
    treatments = classifier.curated_treatments()
    treatment_codes = sorted(treatments)

    cases: list[HistoricalCase] = []
    for _ in range(count):
        diagnosis_code, _description = rng.choice(DIAGNOSIS_CODES)
        treatment_code = rng.choice(treatment_codes)
        treatment = treatments[treatment_code]
        insurer, base_rate, avg_days = rng.choice(INSURERS)
        diagnosis_category = classifier.diagnosis_category(diagnosis_code)

        approval_chance = base_rate
        if diagnosis_category == "oncology":
            approval_chance += 0.10
        if treatment.typical_cost > 10000:
            approval_chance -= 0.08

        documentation_complete = rng.random() > 0.3
        if documentation_complete:
            approval_chance += 0.12
        had_prior_treatment = rng.random() > 0.4
        if had_prior_treatment:
            approval_chance += 0.08

        approved = rng.random() < approval_chance
        urgency = rng.choice(URGENCY_LEVELS)

        processing_days = avg_days + rng.randint(-5, 5)
        if urgency == "urgent":
            processing_days -= 5
        elif urgency == "emergent":
            processing_days -= 8

        cases.append(
            HistoricalCase(
                diagnosis_code=diagnosis_code,
                diagnosis_category=diagnosis_category,
                treatment_code=treatment_code,
                treatment_category=treatment.category,
                insurance_provider=insurer,
                patient_age=rng.randint(25, 85),
                patient_gender=rng.choice(["M", "F"]),
                outcome="approved" if approved else "denied",
                denial_reason=None if approved else rng.choice(DENIAL_REASONS),
                processing_days=max(1, processing_days),
                had_prior_treatment=had_prior_treatment,
                documentation_complete=documentation_complete,
                urgency_level=urgency,
                year=rng.choice([2023, 2024, 2025]),
                month=rng.randint(1, 12),
            )
        )

    return cases


def ensure_historical_cases_table(
    con: duckdb.DuckDBPyConnection, table: str = HISTORICAL_CASES_TABLE
) -> None:
    schema = table.split(".")[0] if "." in table else None
    if schema:
        con.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
    con.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            diagnosis_code VARCHAR NOT NULL,
            diagnosis_category VARCHAR NOT NULL,
            treatment_code VARCHAR NOT NULL,
            treatment_category VARCHAR NOT NULL,
            insurance_provider VARCHAR NOT NULL,
            patient_age INTEGER,
            patient_gender VARCHAR,
            outcome VARCHAR NOT NULL,
            denial_reason VARCHAR,
            processing_days INTEGER NOT NULL,
            had_prior_treatment BOOLEAN,
            documentation_complete BOOLEAN,
            urgency_level VARCHAR,
            year INTEGER,
            month INTEGER
        )
        """
    )


def write_cases_to_duckdb(
    con: duckdb.DuckDBPyConnection,
    cases: list[HistoricalCase],
    table: str = HISTORICAL_CASES_TABLE,
    replace: bool = True,
) -> int:
    """Bulk-load historical cases into DuckDB.

    Args:
        con: Open DuckDB connection
        cases: Cases to write
        table: Target table (created if missing)
        replace: Delete existing rows first

    Returns:
        Number of rows written
    """
    ensure_historical_cases_table(con, table)
    if replace:
        con.execute(f"DELETE FROM {table}")

    if not cases:
        return 0

    df = pl.DataFrame([case.model_dump() for case in cases], schema=HISTORICAL_CASE_SCHEMA)
    con.execute(f"INSERT INTO {table} SELECT * FROM df")

    logger.info("Wrote %d historical cases to %s", len(cases), table)
    return len(cases)
