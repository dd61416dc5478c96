from __future__ import annotations

from datetime import UTC, datetime

import duckdb

from pa_calculators.approval_risk_calculator.corpus import ensure_historical_cases_table


def ensure_core_schemas(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("CREATE SCHEMA IF NOT EXISTS main_raw")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_intermediate")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_runs")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_analytics")


def ensure_input_tables(con: duckdb.DuckDBPyConnection) -> None:
    ensure_historical_cases_table(con)

    # Requests waiting to be scored; upstream PA intake loads this table
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.pa_risk_input (
            request_id VARCHAR PRIMARY KEY,
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


def ensure_run_registry(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.run_registry (
            run_id VARCHAR PRIMARY KEY,
            run_timestamp VARCHAR,
            dagster_run_id VARCHAR,
            run_description VARCHAR,
            analysis_type VARCHAR,
            calculator VARCHAR,
            policy_version VARCHAR,
            config_yml VARCHAR,
            status VARCHAR,
            row_count BIGINT,
            trigger_source VARCHAR,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        )
        """
    )

    # Not unique, to allow sub-second collisions
    con.execute(
        "CREATE INDEX IF NOT EXISTS idx_run_registry_timestamp ON main_runs.run_registry (run_timestamp)"
    )


def ensure_marts_tables(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.risk_scores (
            run_id VARCHAR,
            request_id VARCHAR,
            diagnosis_code VARCHAR,
            treatment_code VARCHAR,
            insurance_provider VARCHAR,
            score INTEGER,
            confidence_low INTEGER,
            confidence_high INTEGER,
            historical_approval_rate DOUBLE,
            estimated_processing_days INTEGER,
            diagnosis_category VARCHAR,
            treatment_category VARCHAR,
            evidence_volume BIGINT,
            policy_version VARCHAR,
            run_timestamp VARCHAR,
            created_at TIMESTAMP,
            positive_factors JSON,
            negative_factors JSON,
            improvement_suggestions JSON,
            components JSON,
            details JSON,
            PRIMARY KEY (run_id, request_id)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.insurer_summary (
            run_id VARCHAR,
            insurance_provider VARCHAR,
            total_count BIGINT,
            approved_count BIGINT,
            approval_rate DOUBLE,
            avg_processing_days DOUBLE,
            created_at TIMESTAMP,
            PRIMARY KEY (run_id, insurance_provider)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.denial_reasons (
            run_id VARCHAR,
            denial_reason VARCHAR,
            denial_count BIGINT,
            created_at TIMESTAMP,
            PRIMARY KEY (run_id, denial_reason)
        )
        """
    )


def ensure_pa_warehouse(con: duckdb.DuckDBPyConnection) -> None:
    ensure_core_schemas(con)
    ensure_input_tables(con)
    ensure_run_registry(con)
    ensure_marts_tables(con)


def now_utc() -> datetime:
    # Naive UTC, matching the TIMESTAMP columns
    return datetime.now(UTC).replace(tzinfo=None)
