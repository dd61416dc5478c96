"""Load the code classification tables shipped with the calculator.

Tables live in:
    reference_tables/

Tables loaded (CSV, read as strings and converted here):
    - diagnosis_prefixes.csv: ICD-10 prefix -> diagnosis category, in priority order
    - treatment_codes.csv: curated HCPCS/CPT code -> category, typical cost, name
    - treatment_patterns.csv: regex fallback by code shape, in priority order
"""

import re
from pathlib import Path
from typing import Any

import polars as pl

# Base directory for reference tables
DATA_DIR = Path(__file__).parent / "reference_tables"

# Cache loaded tables
_CACHE: dict[str, Any] = {}


def _read_table(tables_dir: Path, file_name: str) -> pl.DataFrame:
    path = tables_dir / file_name
    if not path.exists():
        raise FileNotFoundError(f"Reference table not found: {path}")
    # infer_schema_length=0 keeps every column as text, so '70553' stays a code
    return pl.read_csv(path, infer_schema_length=0)


def load_diagnosis_prefixes(tables_dir: Path = DATA_DIR) -> list[tuple[str, str]]:
    """Load the diagnosis prefix table.

    Returns:
        Ordered list of (prefix, category) pairs, in file order
    """
    cache_key = f"diagnosis_prefixes_{tables_dir}"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    df = _read_table(tables_dir, "diagnosis_prefixes.csv")
    prefixes: list[tuple[str, str]] = []
    for row in df.iter_rows(named=True):
        prefix = str(row["prefix"] or "").strip().upper()
        category = str(row["category"] or "").strip()
        if prefix and category:
            prefixes.append((prefix, category))

    _CACHE[cache_key] = prefixes
    return prefixes


def load_treatment_codes(tables_dir: Path = DATA_DIR) -> dict[str, dict[str, Any]]:
    """Load the curated treatment code table.

    Returns:
        Dictionary mapping code to {"category", "typical_cost", "name"}
        e.g., {"J9271": {"category": "medication", "typical_cost": 15000.0, ...}}
    """
    cache_key = f"treatment_codes_{tables_dir}"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    df = _read_table(tables_dir, "treatment_codes.csv")
    codes: dict[str, dict[str, Any]] = {}
    for row in df.iter_rows(named=True):
        code = str(row["code"] or "").strip().upper()
        if not code:
            continue
        codes[code] = {
            "category": str(row["category"]).strip(),
            "typical_cost": float(row["typical_cost"]),
            "name": str(row.get("name") or "").strip() or None,
        }

    _CACHE[cache_key] = codes
    return codes


def load_treatment_patterns(
    tables_dir: Path = DATA_DIR,
) -> list[tuple[re.Pattern[str], str, float]]:
    """Load the shape-based treatment fallback rules.

    Returns:
        Ordered list of (compiled pattern, category, typical cost)
    """
    cache_key = f"treatment_patterns_{tables_dir}"
    if cache_key in _CACHE:
        return _CACHE[cache_key]

    df = _read_table(tables_dir, "treatment_patterns.csv")
    patterns: list[tuple[re.Pattern[str], str, float]] = []
    for row in df.iter_rows(named=True):
        patterns.append(
            (
                re.compile(str(row["pattern"]).strip()),
                str(row["category"]).strip(),
                float(row["typical_cost"]),
            )
        )

    _CACHE[cache_key] = patterns
    return patterns


def clear_cache() -> None:
    """Clear the table cache."""
    _CACHE.clear()
