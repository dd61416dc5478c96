from enum import Enum
from typing import Any, Optional

import polars as pl
from dagster import AssetExecutionContext, Config, asset

from pa_calculators.approval_risk_calculator import (
    ApprovalRiskCalculator,
    CachedOutcomeAggregator,
    DuckDBOutcomeAggregator,
    load_policy,
)
from pa_calculators.approval_risk_calculator.aggregator import HISTORICAL_CASES_TABLE
from pa_calculators.approval_risk_calculator.request_processing import rows_to_requests
from pa_dagster.db.bootstrap import ensure_pa_warehouse, now_utc
from pa_dagster.db.run_registry import (
    RunRecord,
    generate_run_id,
    generate_run_timestamp,
    insert_run,
    json_dumps,
    update_run_status,
)
from pa_dagster.resources.duckdb_resource import DuckDBResource


class InvalidUrgencyOption(str, Enum):
    skip = "skip"
    coerce = "coerce"


class UrgencyOption(str, Enum):
    routine = "routine"
    urgent = "urgent"
    emergent = "emergent"


class ScoringConfig(Config):
    run_description: str = "PA approval risk scoring run"
    trigger_source: str = "dagster"
    history_table: str = HISTORICAL_CASES_TABLE
    policy_path: Optional[str] = None
    cache_ttl_seconds: float = 300.0
    batch_size: int = 5000
    invalid_urgency: InvalidUrgencyOption = InvalidUrgencyOption.skip
    coerce_urgency: Optional[UrgencyOption] = None


# Columns must match main_runs.risk_scores definition order
DB_COLUMNS = [
    "run_id",
    "request_id",
    "diagnosis_code",
    "treatment_code",
    "insurance_provider",
    "score",
    "confidence_low",
    "confidence_high",
    "historical_approval_rate",
    "estimated_processing_days",
    "diagnosis_category",
    "treatment_category",
    "evidence_volume",
    "policy_version",
    "run_timestamp",
    "created_at",
    "positive_factors",
    "negative_factors",
    "improvement_suggestions",
    "components",
    "details",
]


@asset(deps=["seed_historical_corpus"])
def score_pa_requests(
    context: AssetExecutionContext, config: ScoringConfig, duckdb: DuckDBResource
) -> int:
    """Score pending PA requests and write results to main_runs.risk_scores."""

    context.log.info(f"Connecting to DuckDB at: {duckdb.path}")
    con = duckdb.get_connection().connect()

    ensure_pa_warehouse(con)

    run_id = generate_run_id()
    run_ts = generate_run_timestamp()

    record = RunRecord(
        run_id=run_id,
        run_timestamp=run_ts,
        dagster_run_id=context.run.run_id,
        run_description=config.run_description,
        analysis_type="scoring",
        calculator="approval_risk_calculator",
        policy_version=None,
        config_yml=config.model_dump(mode="json"),
        status="started",
        trigger_source=config.trigger_source,
        created_at=now_utc(),
        updated_at=now_utc(),
    )

    insert_run(con, record)

    try:
        policy = load_policy(config.policy_path) if config.policy_path else None
        calculator = ApprovalRiskCalculator(
            CachedOutcomeAggregator(
                DuckDBOutcomeAggregator(con, table=config.history_table),
                ttl_seconds=config.cache_ttl_seconds,
            ),
            policy=policy,
        )
        policy_version = calculator.policy.version

        rows = con.execute(
            """
            SELECT
                request_id,
                diagnosis_code,
                treatment_code,
                insurance_provider,
                patient_age,
                has_complete_docs,
                has_prior_treatment,
                urgency_level
            FROM main_intermediate.pa_risk_input
            ORDER BY request_id
            """
        ).fetchall()

        invalid_urgency = config.invalid_urgency.value
        coerce_urgency = config.coerce_urgency.value if config.coerce_urgency else None

        if invalid_urgency == "coerce" and coerce_urgency is None:
            coerce_urgency = "routine"

        requests, stats = rows_to_requests(
            rows,
            invalid_urgency=invalid_urgency,
            coerce_urgency=coerce_urgency,
        )

        if stats["skipped"] > 0:
            context.log.warning(f"Skipped {stats['skipped']} requests due to invalid data.")
        if stats["invalid_urgency_values"]:
            context.log.info(f"Invalid urgency values encountered: {stats['invalid_urgency_values']}")

        context.log.info(f"Starting scoring for {len(requests)} requests...")

        out_rows: list[dict[str, Any]] = []
        created_at = now_utc()
        total_written = 0

        def flush_batch(rows: list[dict[str, Any]]) -> None:
            if not rows:
                return
            df = pl.DataFrame(rows).select(DB_COLUMNS)
            con.execute("INSERT OR REPLACE INTO main_runs.risk_scores SELECT * FROM df")

        for request_id, request in requests:
            result = calculator.score(request)
            details = result.details

            out_rows.append(
                {
                    "run_id": run_id,
                    "request_id": request_id,
                    "diagnosis_code": request.diagnosis_code,
                    "treatment_code": request.treatment_code,
                    "insurance_provider": request.insurance_provider,
                    "score": result.score,
                    "confidence_low": result.confidence_low,
                    "confidence_high": result.confidence_high,
                    "historical_approval_rate": float(result.historical_approval_rate),
                    "estimated_processing_days": result.estimated_processing_days,
                    "diagnosis_category": details.get("diagnosis_category"),
                    "treatment_category": details.get("treatment_category"),
                    "evidence_volume": int(details.get("evidence_volume", 0)),
                    "policy_version": policy_version,
                    "run_timestamp": run_ts,
                    "created_at": created_at,
                    "positive_factors": json_dumps(result.positive_factors),
                    "negative_factors": json_dumps(result.negative_factors),
                    "improvement_suggestions": json_dumps(result.improvement_suggestions),
                    "components": json_dumps([c.model_dump() for c in result.components]),
                    "details": json_dumps(details),
                }
            )

            if len(out_rows) >= config.batch_size:
                flush_batch(out_rows)
                total_written += len(out_rows)
                out_rows = []
                context.log.info(f"Scored and wrote {total_written}/{len(requests)} requests")

        flush_batch(out_rows)
        total_written += len(out_rows)

        update_run_status(
            con,
            run_id=run_id,
            status="success",
            row_count=total_written,
            policy_version=policy_version,
        )
        context.log.info(
            f"Wrote {total_written} rows to main_runs.risk_scores for run_id={run_id}"
        )
        return total_written

    except Exception:
        update_run_status(con, run_id=run_id, status="failed")
        raise

    finally:
        con.close()
