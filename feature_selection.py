"""Column discovery and complete-case feature extraction from raw tables."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from analysis_config import DEFAULT_MARKER_PATTERN
from error_handling import ColumnNotFoundError, DataInsufficiencyError

MIN_COMPLETE_ROWS = 3


@dataclass(frozen=True)
class FeatureMatrix:
    """Numeric marker matrix plus the raw-table row labels that survived filtering."""

    values: np.ndarray
    markers: tuple
    row_index: pd.Index
    positions: np.ndarray

    @property
    def n_rows(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.values.shape[1])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=self.row_index, columns=list(self.markers))


def ensure_columns_exist(table: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [column for column in columns if column not in table.columns]
    if missing:
        raise ColumnNotFoundError(
            "Table is missing requested columns: " + ", ".join(map(str, missing)),
            details={"missing": list(missing)},
        )


def coerce_numeric(table: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Return ``columns`` as floats; unparsable and infinite entries become NaN."""

    coerced = {
        column: pd.to_numeric(table[column], errors="coerce").astype(float).to_numpy()
        for column in columns
    }
    frame = pd.DataFrame(coerced, index=table.index, columns=list(columns))
    return frame.replace([np.inf, -np.inf], np.nan)


def select_features(
    table: pd.DataFrame,
    markers: Sequence[str],
    *,
    min_rows: int = MIN_COMPLETE_ROWS,
) -> FeatureMatrix:
    """Extract the selected markers, dropping any row with a missing value."""

    markers = list(markers)
    if not markers:
        raise ColumnNotFoundError("Select at least one marker column.")
    ensure_columns_exist(table, markers)

    numeric = coerce_numeric(table, markers)
    complete_mask = numeric.notna().all(axis=1).to_numpy()
    complete = numeric.loc[complete_mask]
    if complete.shape[0] < min_rows:
        raise DataInsufficiencyError(
            "Not enough data for dimensionality reduction: "
            f"{complete.shape[0]} complete row(s), at least {min_rows} required.",
            details={"complete_rows": int(complete.shape[0]), "required_rows": int(min_rows)},
        )
    return FeatureMatrix(
        values=complete.to_numpy(dtype=float, copy=True),
        markers=tuple(markers),
        row_index=complete.index,
        positions=np.flatnonzero(complete_mask),
    )


def detect_marker_columns(
    table: pd.DataFrame, pattern: str = DEFAULT_MARKER_PATTERN
) -> List[str]:
    """Columns whose name matches ``pattern`` (CD4/CD8 channels by default)."""

    regex = re.compile(pattern)
    return [column for column in table.columns if regex.search(str(column))]


def candidate_treatment_columns(table: pd.DataFrame) -> List[str]:
    """Text or categorical columns that can act as treatment groupings."""

    candidates: List[str] = []
    for column in table.columns:
        series = table[column]
        if isinstance(series.dtype, pd.CategoricalDtype):
            candidates.append(column)
        elif not is_numeric_dtype(series):
            candidates.append(column)
    return candidates


def describe_columns(
    table: pd.DataFrame, pattern: str = DEFAULT_MARKER_PATTERN
) -> Dict[str, List[str]]:
    numeric = [column for column in table.columns if is_numeric_dtype(table[column])]
    categorical = [
        column
        for column in table.columns
        if isinstance(table[column].dtype, pd.CategoricalDtype)
    ]
    text = [
        column
        for column in table.columns
        if column not in numeric and column not in categorical
    ]
    return {
        "columns": [str(column) for column in table.columns],
        "markers": [str(column) for column in detect_marker_columns(table, pattern)],
        "numeric": [str(column) for column in numeric],
        "categorical": [str(column) for column in categorical],
        "text": [str(column) for column in text],
        "treatment_candidates": [str(column) for column in candidate_treatment_columns(table)],
    }


__all__ = [
    "FeatureMatrix",
    "MIN_COMPLETE_ROWS",
    "candidate_treatment_columns",
    "coerce_numeric",
    "describe_columns",
    "detect_marker_columns",
    "ensure_columns_exist",
    "select_features",
]
