"""Joins embedding, clusters and metadata into one result and summarises markers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from clustering_ops import ClusterAssignment
from error_handling import AlignmentError
from feature_selection import FeatureMatrix, coerce_numeric, ensure_columns_exist
from reductions import Embedding, EmbeddingMethod

SUMMARY_STATISTICS = ("Mean", "SD", "Median", "Min", "Max")
PROJECTION_COLUMNS = ("Dim1", "Dim2", "Treatment", "Cluster", "Sample")


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one analysis run. Superseded, never mutated, by the next run."""

    projection: pd.DataFrame
    embedding: Embedding
    clusters: ClusterAssignment
    long_data: pd.DataFrame
    summary: pd.DataFrame
    markers: tuple
    treatment_column: str
    method: EmbeddingMethod
    random_state: int
    summary_row_divergence: int = 0
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    @property
    def n_rows(self) -> int:
        return int(self.projection.shape[0])

    def to_metadata(self) -> Dict[str, object]:
        return {
            "method": self.method.value,
            "markers": list(self.markers),
            "treatment_column": self.treatment_column,
            "random_state": self.random_state,
            "rows": self.n_rows,
            "embedding_params": dict(self.embedding.effective_params),
            "requested_clusters": self.clusters.requested_k,
            "effective_clusters": self.clusters.effective_k,
            "summary_row_divergence": self.summary_row_divergence,
            "timings": dict(self.timings),
        }


def _check_aligned(**lengths: int) -> None:
    distinct = set(lengths.values())
    if len(distinct) > 1:
        raise AlignmentError(
            "Positionally aligned inputs disagree in length: "
            + ", ".join(f"{name}={value}" for name, value in lengths.items()),
            details=dict(lengths),
        )


def sample_labels(
    table: pd.DataFrame, features: FeatureMatrix, sample_column: Optional[str]
) -> np.ndarray:
    """Sample ids for the surviving rows, or ``Sample 1..n`` when absent."""

    if sample_column and sample_column in table.columns:
        return table[sample_column].iloc[features.positions].to_numpy()
    return np.array([f"Sample {idx}" for idx in range(1, features.n_rows + 1)], dtype=object)


def build_projection(
    table: pd.DataFrame,
    features: FeatureMatrix,
    embedding: Embedding,
    clusters: ClusterAssignment,
    treatment_column: str,
    sample_column: Optional[str] = "Sample",
) -> pd.DataFrame:
    _check_aligned(
        features=features.n_rows,
        embedding=embedding.n_rows,
        clusters=clusters.n_rows,
        positions=int(features.positions.shape[0]),
    )
    ensure_columns_exist(table, [treatment_column])
    coordinates = embedding.coordinates
    projection = pd.DataFrame(
        {
            "Dim1": coordinates[:, 0],
            "Dim2": coordinates[:, 1],
            "Treatment": table[treatment_column].iloc[features.positions].to_numpy(),
            "Cluster": clusters.as_categorical(),
            "Sample": sample_labels(table, features, sample_column),
        },
        index=features.row_index,
    )
    return projection


def long_format(
    table: pd.DataFrame, markers: Sequence[str], treatment_column: str
) -> pd.DataFrame:
    """Marker/value pairs for every row of the unfiltered table."""

    markers = list(markers)
    ensure_columns_exist(table, markers + [treatment_column])
    id_columns = [column for column in table.columns if column not in markers]
    wide = table.loc[:, id_columns].copy()
    numeric = coerce_numeric(table, markers)
    for marker in markers:
        wide[marker] = numeric[marker].to_numpy()
    long_data = wide.melt(
        id_vars=id_columns, value_vars=markers, var_name="Marker", value_name="Value"
    )
    long_data["Value"] = long_data["Value"].astype(float)
    return long_data


def summarize_markers(long_data: pd.DataFrame, treatment_column: str) -> pd.DataFrame:
    """Mean/SD/median/min/max per treatment and marker.

    Each aggregate skips only that marker's own missing values, so a row that
    was dropped from the feature matrix still contributes to markers where it
    has data.
    """

    grouped = long_data.groupby(
        [treatment_column, "Marker"], dropna=False, sort=True, observed=True
    )["Value"]
    summary = grouped.agg(
        Mean="mean",
        SD="std",
        Median="median",
        Min="min",
        Max="max",
        N="count",
    ).reset_index()
    summary["N"] = summary["N"].astype(int)
    return summary


def summary_divergence(table: pd.DataFrame, features: FeatureMatrix) -> int:
    """Rows feeding the summary table that the projection does not contain."""

    numeric = coerce_numeric(table, list(features.markers))
    contributing = int(numeric.notna().any(axis=1).sum())
    return contributing - features.n_rows


def assemble_result(
    table: pd.DataFrame,
    features: FeatureMatrix,
    embedding: Embedding,
    clusters: ClusterAssignment,
    treatment_column: str,
    *,
    random_state: int,
    sample_column: Optional[str] = "Sample",
    long_data: Optional[pd.DataFrame] = None,
    timings: Optional[Dict[str, float]] = None,
) -> AnalysisResult:
    projection = build_projection(
        table, features, embedding, clusters, treatment_column, sample_column
    )
    if long_data is None:
        long_data = long_format(table, features.markers, treatment_column)
    summary = summarize_markers(long_data, treatment_column)
    return AnalysisResult(
        projection=projection,
        embedding=embedding,
        clusters=clusters,
        long_data=long_data,
        summary=summary,
        markers=tuple(features.markers),
        treatment_column=treatment_column,
        method=embedding.method,
        random_state=int(random_state),
        summary_row_divergence=summary_divergence(table, features),
        timings=dict(timings or {}),
    )


__all__ = [
    "AnalysisResult",
    "PROJECTION_COLUMNS",
    "SUMMARY_STATISTICS",
    "assemble_result",
    "build_projection",
    "long_format",
    "sample_labels",
    "summarize_markers",
    "summary_divergence",
]
