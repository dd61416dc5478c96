from __future__ import annotations

import argparse
import csv
import json
import os
from datetime import datetime
from pathlib import Path

import duckdb
import yaml

from pa_calculators.approval_risk_calculator.aggregator import (
    HISTORICAL_CASES_TABLE,
    CachedOutcomeAggregator,
    DuckDBOutcomeAggregator,
)
from pa_calculators.approval_risk_calculator.calculator import ApprovalRiskCalculator
from pa_calculators.approval_risk_calculator.policy import load_policy
from pa_calculators.approval_risk_calculator.request_processing import rows_to_requests


def _get_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _default_duckdb_path() -> str:
    env_path = os.environ.get("DUCKDB_PATH")
    if env_path:
        return env_path
    return str((_get_repo_root() / "prior_auth.duckdb").resolve())


def score_from_duckdb_to_csv(
    *,
    duckdb_path: str,
    output_csv_path: str,
    schema: str = "main_intermediate",
    table: str = "pa_risk_input",
    history_table: str = HISTORICAL_CASES_TABLE,
    policy_path: str | None = None,
    limit: int | None = None,
    invalid_urgency: str = "skip",
    coerce_urgency: str | None = None,
    detail_files: int = 20,
) -> int:
    """Read PA requests from DuckDB and write approval risk scores to CSV.

    Returns number of rows written.

    Expected input relation: `{schema}.{table}` with columns:
    - request_id, diagnosis_code, treatment_code, insurance_provider, patient_age,
      has_complete_docs, has_prior_treatment, urgency_level
    """

    con = duckdb.connect(str(Path(duckdb_path).expanduser().resolve()))
    try:
        sql = f"""
        SELECT
            request_id,
            diagnosis_code,
            treatment_code,
            insurance_provider,
            patient_age,
            has_complete_docs,
            has_prior_treatment,
            urgency_level
        FROM {schema}.{table}
        ORDER BY request_id
        """.strip()
        if limit is not None:
            sql += f"\nLIMIT {int(limit)}"

        rows = con.execute(sql).fetchall()
        requests, stats = rows_to_requests(
            rows,
            invalid_urgency=invalid_urgency,
            coerce_urgency=coerce_urgency,
        )

        policy = load_policy(policy_path) if policy_path else None
        # Batches repeat the same insurer-level queries, so cache them for the run
        aggregator = CachedOutcomeAggregator(DuckDBOutcomeAggregator(con, table=history_table))
        calculator = ApprovalRiskCalculator(aggregator, policy=policy)

        output_path = Path(output_csv_path).expanduser().resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        fieldnames = [
            "request_id",
            "diagnosis_code",
            "treatment_code",
            "insurance_provider",
            "score",
            "confidence_low",
            "confidence_high",
            "historical_approval_rate",
            "estimated_processing_days",
            "positive_factors",
            "negative_factors",
            "improvement_suggestions",
            "policy_version",
        ]

        # Full audit trail for the first few requests
        yaml_dir = output_path.parent / "yaml_details"
        yaml_dir.mkdir(parents=True, exist_ok=True)

        with output_path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()

            for i, (request_id, request) in enumerate(requests):
                result = calculator.score(request)

                if i < detail_files:
                    yaml_data = {
                        "request_id": request_id,
                        "request": request.model_dump(),
                        "result": result.model_dump(mode="json", exclude={"details"}),
                        "details": json.loads(json.dumps(result.details, default=str)),
                    }
                    with (yaml_dir / f"{request_id}.yml").open("w", encoding="utf-8") as yf:
                        yaml.dump(yaml_data, yf, sort_keys=False)

                writer.writerow(
                    {
                        "request_id": request_id,
                        "diagnosis_code": request.diagnosis_code,
                        "treatment_code": request.treatment_code,
                        "insurance_provider": request.insurance_provider,
                        "score": result.score,
                        "confidence_low": result.confidence_low,
                        "confidence_high": result.confidence_high,
                        "historical_approval_rate": round(result.historical_approval_rate, 6),
                        "estimated_processing_days": result.estimated_processing_days,
                        "positive_factors": json.dumps(result.positive_factors),
                        "negative_factors": json.dumps(result.negative_factors),
                        "improvement_suggestions": json.dumps(result.improvement_suggestions),
                        "policy_version": calculator.policy.version,
                    }
                )

        skipped = int(stats.get("skipped", 0))
        if skipped:
            total_rows = len(rows)
            pct = (skipped / total_rows) * 100 if total_rows > 0 else 0
            invalids = stats.get("invalid_urgency_values", {})
            invalids_str = ", ".join(f"{k}={v}" for k, v in sorted(invalids.items()))
            print(
                f"Skipped {skipped}/{total_rows} ({pct:.2f}%) rows "
                f"(invalid rows={stats.get('invalid_rows', 0)}; "
                f"invalid urgency values: {invalids_str or 'none'})"
            )

        return len(requests)
    finally:
        con.close()


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pa_calculators.approval_risk_calculator.duckdb_to_csv",
        description=(
            "Read main_intermediate.pa_risk_input from DuckDB and write "
            "approval risk scores to CSV."
        ),
    )
    p.add_argument(
        "--duckdb-path",
        default=_default_duckdb_path(),
        help="Path to DuckDB file (default: DUCKDB_PATH env var or repo prior_auth.duckdb)",
    )
    p.add_argument(
        "--output-csv",
        required=False,
        help="Output CSV path. Defaults to tmp_exports/YYYYMMDD_HHMMSSffffff_pa_scores_out.csv",
    )
    p.add_argument(
        "--schema",
        default="main_intermediate",
        help="DuckDB schema containing the input relation",
    )
    p.add_argument(
        "--table",
        default="pa_risk_input",
        help="DuckDB table/view name containing the input relation",
    )
    p.add_argument(
        "--history-table",
        default=HISTORICAL_CASES_TABLE,
        help="Fully qualified table holding the historical corpus",
    )
    p.add_argument(
        "--policy",
        default=None,
        help="Optional scoring policy YAML",
    )
    p.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional row limit for quick smoke tests",
    )
    p.add_argument(
        "--invalid-urgency",
        choices=["skip", "coerce"],
        default="skip",
        help="What to do if urgency is not routine/urgent/emergent: skip row or coerce",
    )
    p.add_argument(
        "--coerce-urgency",
        choices=["routine", "urgent", "emergent"],
        default=None,
        help="When --invalid-urgency=coerce, coerce unrecognized urgencies to this value",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)

    output_csv = args.output_csv
    if not output_csv:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")
        output_csv = str(Path(__file__).parent / "tmp_exports" / f"{timestamp}_pa_scores_out.csv")

    count = score_from_duckdb_to_csv(
        duckdb_path=args.duckdb_path,
        output_csv_path=output_csv,
        schema=str(args.schema),
        table=str(args.table),
        history_table=str(args.history_table),
        policy_path=args.policy,
        limit=args.limit,
        invalid_urgency=str(args.invalid_urgency),
        coerce_urgency=str(args.coerce_urgency) if args.coerce_urgency else None,
    )

    print(f"Wrote {count} rows to {Path(output_csv).expanduser().resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
