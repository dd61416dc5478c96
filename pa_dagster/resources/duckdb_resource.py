from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import duckdb
from dagster import ConfigurableResource


def default_duckdb_path() -> str:
    env_path = os.environ.get("DUCKDB_PATH")
    if env_path:
        return env_path
    return str((Path(__file__).resolve().parents[2] / "prior_auth.duckdb").resolve())


@dataclass(frozen=True)
class DuckDBConnection:
    path: Path
    read_only: bool = False

    def connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.path), read_only=self.read_only)


class DuckDBResource(ConfigurableResource):
    """Dagster resource for connecting to the prior-auth DuckDB warehouse."""

    path: str = default_duckdb_path()

    def get_connection(self, read_only: bool = False) -> DuckDBConnection:
        return DuckDBConnection(path=Path(self.path).expanduser().resolve(), read_only=read_only)
