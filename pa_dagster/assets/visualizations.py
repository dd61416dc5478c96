from __future__ import annotations

from pathlib import Path

import altair as alt
from dagster import asset

from pa_dagster.resources.duckdb_resource import DuckDBResource

VISUALIZATIONS_DIR = Path(__file__).resolve().parents[1] / "output" / "visualizations"


@asset
def insurer_approval_chart(context, insurer_outcome_summary: dict, duckdb: DuckDBResource) -> None:
    """
    Bar chart of historical approval rate per insurer for the latest summary run.
    """
    run_id = insurer_outcome_summary["run_id"]
    con = duckdb.get_connection().connect()

    try:
        df = con.execute(
            """
            SELECT insurance_provider, approval_rate, total_count, avg_processing_days
            FROM main_analytics.insurer_summary
            WHERE run_id = ?
            ORDER BY approval_rate DESC
            """,
            [run_id],
        ).fetch_df()
    finally:
        con.close()

    if df.empty:
        context.log.warning(f"No insurer summary rows for run {run_id}; skipping chart")
        return

    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            alt.X("approval_rate:Q", title="Approval Rate", axis=alt.Axis(format="%")),
            alt.Y("insurance_provider:N", sort="-x", title="Insurer"),
            tooltip=["insurance_provider", "approval_rate", "total_count", "avg_processing_days"],
        )
        .properties(title="Historical Approval Rate by Insurer")
    )

    VISUALIZATIONS_DIR.mkdir(parents=True, exist_ok=True)
    output_path = VISUALIZATIONS_DIR / f"insurer_approval_{run_id}.html"
    chart.save(str(output_path))
    context.log.info(f"Chart saved to {output_path}")
