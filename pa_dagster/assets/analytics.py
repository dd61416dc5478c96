import polars as pl
from dagster import AssetExecutionContext, Config, asset

from pa_calculators.approval_risk_calculator.aggregator import (
    HISTORICAL_CASES_TABLE,
    DuckDBOutcomeAggregator,
)
from pa_dagster.db.bootstrap import ensure_pa_warehouse, now_utc
from pa_dagster.db.run_registry import (
    RunRecord,
    generate_run_id,
    generate_run_timestamp,
    insert_run,
    update_run_status,
)
from pa_dagster.resources.duckdb_resource import DuckDBResource


class AnalyticsConfig(Config):
    run_description: str = "Insurer outcome summary"
    trigger_source: str = "dagster"
    history_table: str = HISTORICAL_CASES_TABLE
    denial_reason_limit: int = 6


@asset(deps=["seed_historical_corpus"])
def insurer_outcome_summary(
    context: AssetExecutionContext, config: AnalyticsConfig, duckdb: DuckDBResource
) -> dict:
    """
    Summarize historical outcomes per insurer and the most common denial reasons.

    Writes main_analytics.insurer_summary and main_analytics.denial_reasons keyed by run_id.
    """
    con = duckdb.get_connection().connect()
    ensure_pa_warehouse(con)

    run_id = generate_run_id()
    insert_run(
        con,
        RunRecord(
            run_id=run_id,
            run_timestamp=generate_run_timestamp(),
            dagster_run_id=context.run.run_id,
            run_description=config.run_description,
            analysis_type="analytics",
            calculator=None,
            policy_version=None,
            config_yml=config.model_dump(),
            status="started",
            trigger_source=config.trigger_source,
            created_at=now_utc(),
            updated_at=now_utc(),
        ),
    )

    try:
        aggregator = DuckDBOutcomeAggregator(con, table=config.history_table)
        insurers = aggregator.insurer_summary()
        denials = aggregator.top_denial_reasons(limit=config.denial_reason_limit)
        created_at = now_utc()

        if insurers:
            df = pl.DataFrame(
                [{"run_id": run_id, **row, "created_at": created_at} for row in insurers]
            ).select(
                "run_id",
                "insurance_provider",
                "total_count",
                "approved_count",
                "approval_rate",
                "avg_processing_days",
                "created_at",
            )
            con.execute("INSERT INTO main_analytics.insurer_summary SELECT * FROM df")

        if denials:
            df = pl.DataFrame(
                {
                    "run_id": [run_id] * len(denials),
                    "denial_reason": [reason for reason, _ in denials],
                    "denial_count": [n for _, n in denials],
                    "created_at": [created_at] * len(denials),
                }
            )
            con.execute("INSERT INTO main_analytics.denial_reasons SELECT * FROM df")

        total = sum(row["total_count"] for row in insurers)
        approved = sum(row["approved_count"] for row in insurers)
        results = {
            "run_id": run_id,
            "total_cases": total,
            "approval_rate": approved / total if total else 0.0,
            "insurers": len(insurers),
            "top_denial_reasons": [reason for reason, _ in denials],
        }

        update_run_status(con, run_id=run_id, status="success", row_count=len(insurers))
        context.log.info(f"Summarized {total} cases across {len(insurers)} insurers: {results}")
        return results

    except Exception:
        update_run_status(con, run_id=run_id, status="failed")
        raise

    finally:
        con.close()
