from dagster import AssetExecutionContext, Config, asset

from pa_calculators.approval_risk_calculator.aggregator import HISTORICAL_CASES_TABLE
from pa_calculators.approval_risk_calculator.corpus import (
    DEFAULT_CORPUS_SIZE,
    generate_historical_cases,
    write_cases_to_duckdb,
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


class CorpusConfig(Config):
    count: int = DEFAULT_CORPUS_SIZE
    seed: int = 42
    replace: bool = True
    table: str = HISTORICAL_CASES_TABLE
    run_description: str = "Historical corpus seed"
    trigger_source: str = "dagster"


@asset
def seed_historical_corpus(
    context: AssetExecutionContext, config: CorpusConfig, duckdb: DuckDBResource
) -> int:
    """Generate the synthetic historical corpus and load it into main_raw.historical_cases."""

    context.log.info(f"Connecting to DuckDB at: {duckdb.path}")
    con = duckdb.get_connection().connect()

    ensure_pa_warehouse(con)

    run_id = generate_run_id()
    record = RunRecord(
        run_id=run_id,
        run_timestamp=generate_run_timestamp(),
        dagster_run_id=context.run.run_id,
        run_description=config.run_description,
        analysis_type="corpus",
        calculator=None,
        policy_version=None,
        config_yml=config.model_dump(),
        status="started",
        trigger_source=config.trigger_source,
        created_at=now_utc(),
        updated_at=now_utc(),
    )
    insert_run(con, record)

    try:
        cases = generate_historical_cases(count=config.count, seed=config.seed)
        written = write_cases_to_duckdb(con, cases, table=config.table, replace=config.replace)

        update_run_status(con, run_id=run_id, status="success", row_count=written)
        context.log.info(f"Wrote {written} historical cases to {config.table} (seed={config.seed})")
        return written

    except Exception:
        update_run_status(con, run_id=run_id, status="failed")
        raise

    finally:
        con.close()
