from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from pa_calculators.approval_risk_calculator import (
    ApprovalRiskCalculator,
    DuckDBOutcomeAggregator,
    RiskScoreRequest,
    load_policy,
)
from pa_calculators.approval_risk_calculator.corpus import (
    DEFAULT_CORPUS_SIZE,
    generate_historical_cases,
    write_cases_to_duckdb,
)
from pa_dagster.db.bootstrap import ensure_pa_warehouse
from pa_dagster.resources.duckdb_resource import DuckDBResource, default_duckdb_path

app = typer.Typer(no_args_is_help=True, help="PA risk CLI - Database and scoring utilities")

DEFAULT_DUCKDB_PATH = default_duckdb_path()


@app.command(name="db-bootstrap")
def db_bootstrap(
    duckdb_path: str = typer.Option(DEFAULT_DUCKDB_PATH, "--duckdb-path"),
) -> None:
    """Create core PA schemas + tables in DuckDB.

    Creates: `main_raw`, `main_intermediate`, `main_runs`, `main_analytics`.
    """

    res = DuckDBResource(path=duckdb_path)
    con = res.get_connection().connect()
    try:
        ensure_pa_warehouse(con)
    finally:
        con.close()

    typer.echo(f"Bootstrapped warehouse at {Path(duckdb_path).resolve()}")


@app.command(name="seed-corpus")
def seed_corpus(
    duckdb_path: str = typer.Option(DEFAULT_DUCKDB_PATH, "--duckdb-path"),
    count: int = typer.Option(DEFAULT_CORPUS_SIZE, "--count", min=0),
    seed: int = typer.Option(42, "--seed"),
    append: bool = typer.Option(False, "--append", help="Keep existing cases"),
) -> None:
    """Generate the synthetic historical corpus into main_raw.historical_cases."""

    res = DuckDBResource(path=duckdb_path)
    con = res.get_connection().connect()
    try:
        ensure_pa_warehouse(con)
        written = write_cases_to_duckdb(
            con, generate_historical_cases(count=count, seed=seed), replace=not append
        )
    finally:
        con.close()

    typer.echo(f"Wrote {written} historical cases to {Path(duckdb_path).resolve()}")


@app.command(name="score")
def score(
    request_file: Optional[Path] = typer.Option(
        None, "--request-file", help="JSON file holding one request (camelCase or snake_case keys)"
    ),
    diagnosis_code: Optional[str] = typer.Option(None, "--diagnosis-code"),
    treatment_code: Optional[str] = typer.Option(None, "--treatment-code"),
    insurance_provider: Optional[str] = typer.Option(None, "--insurance-provider"),
    patient_age: Optional[int] = typer.Option(None, "--patient-age"),
    complete_docs: bool = typer.Option(True, "--complete-docs/--incomplete-docs"),
    prior_treatment: bool = typer.Option(False, "--prior-treatment/--no-prior-treatment"),
    urgency_level: str = typer.Option("routine", "--urgency-level"),
    policy_path: Optional[str] = typer.Option(None, "--policy"),
    include_history: bool = typer.Option(
        False, "--include-history", help="Add historical comparison and completion estimate"
    ),
    duckdb_path: str = typer.Option(DEFAULT_DUCKDB_PATH, "--duckdb-path"),
) -> None:
    """Score a single PA request and print the result as JSON."""

    try:
        if request_file is not None:
            request = RiskScoreRequest.model_validate(
                json.loads(request_file.read_text(encoding="utf-8"))
            )
        else:
            request = RiskScoreRequest(
                diagnosis_code=diagnosis_code or "",
                treatment_code=treatment_code or "",
                insurance_provider=insurance_provider or "",
                patient_age=patient_age,
                has_complete_docs=complete_docs,
                has_prior_treatment=prior_treatment,
                urgency_level=urgency_level,
            )
    except ValidationError as exc:
        typer.echo(f"Invalid request: {exc}", err=True)
        raise typer.Exit(code=2)

    if not Path(duckdb_path).expanduser().exists():
        typer.echo(f"DuckDB file not found: {duckdb_path} (run seed-corpus first)", err=True)
        raise typer.Exit(code=1)

    aggregator = DuckDBOutcomeAggregator.from_path(duckdb_path)
    try:
        policy = load_policy(policy_path) if policy_path else None
        calculator = ApprovalRiskCalculator(aggregator, policy=policy)
        result = calculator.score(request)
        payload = result.model_dump(mode="json", by_alias=True)

        if include_history:
            payload["historicalComparison"] = calculator.historical_comparison(
                request.insurance_provider, request.treatment_code, request.diagnosis_code
            ).model_dump(mode="json", by_alias=True)
            payload["completionEstimate"] = calculator.estimate_completion_time(
                request.insurance_provider, request.urgency_level or "routine"
            ).model_dump(mode="json", by_alias=True)
    finally:
        aggregator.close()

    typer.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    app()
