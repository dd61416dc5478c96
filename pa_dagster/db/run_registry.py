from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import duckdb

from pa_dagster.db.bootstrap import now_utc


def generate_run_id() -> str:
    return str(uuid4())


def generate_run_timestamp(now: datetime | None = None) -> str:
    """Return YYYYMMDDHHMMSSUUUU where UUUU is 1/10,000th of a second."""

    now = now or datetime.now(UTC)
    uuuu = now.microsecond // 100  # 0-9999
    return now.strftime("%Y%m%d%H%M%S") + f"{uuuu:04d}"


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    run_timestamp: str
    dagster_run_id: str | None
    run_description: str | None
    analysis_type: str
    calculator: str | None
    policy_version: str | None
    config_yml: dict[str, Any]
    status: str
    trigger_source: str | None
    created_at: datetime
    updated_at: datetime


def insert_run(con: duckdb.DuckDBPyConnection, record: RunRecord) -> None:
    con.execute(
        """
        INSERT INTO main_runs.run_registry (
            run_id,
            run_timestamp,
            dagster_run_id,
            run_description,
            analysis_type,
            calculator,
            policy_version,
            config_yml,
            status,
            row_count,
            trigger_source,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            record.run_id,
            record.run_timestamp,
            record.dagster_run_id,
            record.run_description,
            record.analysis_type,
            record.calculator,
            record.policy_version,
            json_dumps(record.config_yml),
            record.status,
            None,
            record.trigger_source,
            record.created_at,
            record.updated_at,
        ],
    )


def update_run_status(
    con: duckdb.DuckDBPyConnection,
    *,
    run_id: str,
    status: str,
    row_count: int | None = None,
    policy_version: str | None = None,
) -> None:
    con.execute(
        """
        UPDATE main_runs.run_registry
        SET status = ?,
            row_count = COALESCE(?, row_count),
            policy_version = COALESCE(?, policy_version),
            updated_at = ?
        WHERE run_id = ?
        """,
        [status, row_count, policy_version, now_utc(), run_id],
    )
