"""Historical outcome aggregation.

Answers "what fraction of historical cases matching this filter were
approved, and how long did they take?" against a read-only corpus snapshot.

Implementations:
    - DuckDBOutcomeAggregator: SQL over main_raw.historical_cases
    - InMemoryOutcomeAggregator: polars filter over HistoricalCase records
    - CachedOutcomeAggregator: TTL cache in front of either of the above

``aggregate`` raises ``duckdb.Error`` on a failed read so caches never hold it;
the calculator turns that into zero evidence. The reporting helpers
(``insurer_summary``, ``top_denial_reasons``) log and return empty lists.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol

import duckdb
import polars as pl

from pa_calculators.approval_risk_calculator.models import (
    HistoricalCase,
    OutcomeAggregate,
    OutcomeFilter,
)

logger = logging.getLogger(__name__)

HISTORICAL_CASES_TABLE = "main_raw.historical_cases"

# Column order matches main_raw.historical_cases
HISTORICAL_CASE_SCHEMA: dict[str, Any] = {
    "diagnosis_code": pl.Utf8,
    "diagnosis_category": pl.Utf8,
    "treatment_code": pl.Utf8,
    "treatment_category": pl.Utf8,
    "insurance_provider": pl.Utf8,
    "patient_age": pl.Int64,
    "patient_gender": pl.Utf8,
    "outcome": pl.Utf8,
    "denial_reason": pl.Utf8,
    "processing_days": pl.Int64,
    "had_prior_treatment": pl.Boolean,
    "documentation_complete": pl.Boolean,
    "urgency_level": pl.Utf8,
    "year": pl.Int64,
    "month": pl.Int64,
}


class OutcomeAggregator(Protocol):
    def aggregate(self, outcome_filter: OutcomeFilter) -> OutcomeAggregate: ...


class DuckDBOutcomeAggregator:
    """Aggregate historical outcomes stored in a DuckDB table.

    Each query runs on its own cursor, so one connection can be shared by
    concurrent scoring calls.
    """

    def __init__(self, con: duckdb.DuckDBPyConnection, table: str = HISTORICAL_CASES_TABLE):
        self._con = con
        self.table = table

    @classmethod
    def from_path(
        cls, duckdb_path: str, table: str = HISTORICAL_CASES_TABLE
    ) -> DuckDBOutcomeAggregator:
        con = duckdb.connect(str(Path(duckdb_path).expanduser().resolve()), read_only=True)
        return cls(con, table=table)

    def close(self) -> None:
        self._con.close()

    def _query(self, sql: str, params: list[Any]) -> list[tuple[Any, ...]]:
        cursor = self._con.cursor()
        try:
            return cursor.execute(sql, params).fetchall()
        finally:
            cursor.close()

    def _fetch(self, sql: str, params: list[Any]) -> list[tuple[Any, ...]] | None:
        try:
            return self._query(sql, params)
        except duckdb.Error as exc:
            logger.warning("Historical corpus read failed on %s: %s", self.table, exc)
            return None

    def aggregate(self, outcome_filter: OutcomeFilter) -> OutcomeAggregate:
        predicates = outcome_filter.predicates()
        where = " AND ".join(f"{column} = ?" for column in predicates) or "TRUE"

        rows = self._query(
            f"""
            SELECT
                COUNT(*) AS total_count,
                COALESCE(SUM(CASE WHEN outcome = 'approved' THEN 1 ELSE 0 END), 0) AS approved_count,
                AVG(processing_days) AS avg_processing_days,
                MIN(processing_days) AS min_processing_days,
                MAX(processing_days) AS max_processing_days
            FROM {self.table}
            WHERE {where}
            """,
            list(predicates.values()),
        )
        if not rows or not rows[0][0]:
            return OutcomeAggregate.empty()

        total, approved, avg_days, min_days, max_days = rows[0]
        return OutcomeAggregate(
            total_count=int(total),
            approved_count=int(approved),
            avg_processing_days=float(avg_days) if avg_days is not None else None,
            min_processing_days=int(min_days) if min_days is not None else None,
            max_processing_days=int(max_days) if max_days is not None else None,
        )

    def insurer_summary(self) -> list[dict[str, Any]]:
        """Per-insurer counts, approval rate and average processing days."""
        rows = self._fetch(
            f"""
            SELECT
                insurance_provider,
                COUNT(*) AS total_count,
                SUM(CASE WHEN outcome = 'approved' THEN 1 ELSE 0 END) AS approved_count,
                ROUND(AVG(processing_days), 1) AS avg_processing_days
            FROM {self.table}
            GROUP BY insurance_provider
            ORDER BY total_count DESC, insurance_provider
            """,
            [],
        )
        return [
            {
                "insurance_provider": insurer,
                "total_count": int(total),
                "approved_count": int(approved),
                "approval_rate": int(approved) / int(total) if total else 0.0,
                "avg_processing_days": float(avg_days) if avg_days is not None else None,
            }
            for insurer, total, approved, avg_days in rows or []
        ]

    def top_denial_reasons(self, limit: int = 6) -> list[tuple[str, int]]:
        rows = self._fetch(
            f"""
            SELECT denial_reason, COUNT(*) AS n
            FROM {self.table}
            WHERE denial_reason IS NOT NULL
            GROUP BY denial_reason
            ORDER BY n DESC, denial_reason
            LIMIT ?
            """,
            [int(limit)],
        )
        return [(str(reason), int(n)) for reason, n in rows or []]


class InMemoryOutcomeAggregator:
    """Aggregate over an in-memory snapshot of historical cases."""

    def __init__(self, cases: Iterable[HistoricalCase]):
        self._df = pl.DataFrame(
            [case.model_dump() for case in cases],
            schema=HISTORICAL_CASE_SCHEMA,
        )

    @property
    def frame(self) -> pl.DataFrame:
        return self._df

    def aggregate(self, outcome_filter: OutcomeFilter) -> OutcomeAggregate:
        condition = pl.lit(True)
        for column, value in outcome_filter.predicates().items():
            condition = condition & (pl.col(column) == value)

        subset = self._df.filter(condition)
        if subset.height == 0:
            return OutcomeAggregate.empty()

        days = subset.get_column("processing_days")
        return OutcomeAggregate(
            total_count=subset.height,
            approved_count=subset.filter(pl.col("outcome") == "approved").height,
            avg_processing_days=float(days.mean()),
            min_processing_days=int(days.min()),
            max_processing_days=int(days.max()),
        )


class CachedOutcomeAggregator:
    """TTL cache in front of another aggregator.

    Entries expire after ``ttl_seconds``; at most ``max_entries`` are kept,
    oldest evicted first. Errors from the inner aggregator propagate and
    leave no entry behind.
    """

    def __init__(
        self,
        inner: OutcomeAggregator,
        ttl_seconds: float = 300.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._inner = inner
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple, tuple[float, OutcomeAggregate]] = OrderedDict()
        self._lock = threading.Lock()

    def aggregate(self, outcome_filter: OutcomeFilter) -> OutcomeAggregate:
        key = outcome_filter.cache_key()
        now = self._clock()

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None and now - cached[0] < self.ttl_seconds:
                return cached[1]

        result = self._inner.aggregate(outcome_filter)

        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (now, result)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
