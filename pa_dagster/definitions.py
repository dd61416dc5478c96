from pathlib import Path

import yaml
from dagster import Definitions, define_asset_job

from pa_dagster.assets.analytics import insurer_outcome_summary
from pa_dagster.assets.corpus import seed_historical_corpus
from pa_dagster.assets.scoring import score_pa_requests
from pa_dagster.assets.visualizations import insurer_approval_chart
from pa_dagster.resources.duckdb_resource import DuckDBResource

CONFIGS_DIR = Path(__file__).resolve().parent / "configs"


def _load_config(name: str) -> dict:
    with open(CONFIGS_DIR / name) as f:
        return yaml.safe_load(f)


corpus_job = define_asset_job(
    name="corpus_job",
    selection=["seed_historical_corpus"],
    description="""
    # Historical Corpus Job

    Regenerates the synthetic historical PA corpus.

    **Steps:**
    1. Generates seeded historical cases
    2. Writes them to `main_raw.historical_cases`
    """,
    config=_load_config("corpus_example.yaml"),
)

scoring_job = define_asset_job(
    name="scoring_job",
    selection=["score_pa_requests"],
    description="""
    # PA Approval Risk Scoring Job

    Scores every pending request in the intermediate table.

    **Steps:**
    1. Reads requests from `main_intermediate.pa_risk_input`
    2. Blends historical approval rates and applies policy adjustments
    3. Writes results to `main_runs.risk_scores`
    """,
    tags={"team": "analytics", "priority": "high"},
    config=_load_config("scoring_example.yaml"),
)

analytics_job = define_asset_job(
    name="analytics_job",
    selection=["insurer_outcome_summary", "insurer_approval_chart"],
    config=_load_config("analytics_example.yaml"),
)


definitions = Definitions(
    assets=[
        seed_historical_corpus,
        score_pa_requests,
        insurer_outcome_summary,
        insurer_approval_chart,
    ],
    resources={
        "duckdb": DuckDBResource(),
    },
    jobs=[corpus_job, scoring_job, analytics_job],
)
