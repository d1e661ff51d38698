"""Chart specifications derived from an analysis result.

Builders return renderer-agnostic :class:`ChartSpec` objects: a tidy data
frame plus the column roles a plotting layer needs. Nothing here draws.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from analysis_config import DEFAULT_MAX_RENDER_POINTS, DEFAULT_RANDOM_STATE
from clustering_ops import cluster_profiles
from error_handling import CardinalityError
from reductions import EmbeddingMethod, ReductionError
from result_assembly import AnalysisResult

FOLD_CHANGE_GROUPS = 2

_METHOD_NAMES = {
    EmbeddingMethod.TSNE: "t-SNE",
    EmbeddingMethod.UMAP: "UMAP",
    EmbeddingMethod.PCA: "Principal Component Analysis",
    EmbeddingMethod.MDS: "Multidimensional Scaling",
}

_AXIS_LABELS = {
    EmbeddingMethod.TSNE: ("t-SNE 1", "t-SNE 2"),
    EmbeddingMethod.UMAP: ("UMAP 1", "UMAP 2"),
    EmbeddingMethod.PCA: ("PC 1", "PC 2"),
    EmbeddingMethod.MDS: ("MDS 1", "MDS 2"),
}


class ComparisonView(str, Enum):
    MARKER_COMPARISON = "marker_comparison"
    TREATMENT_COMPARISON = "treatment_comparison"
    FOLD_CHANGE = "fold_change"
    SUMMARY_BARS = "summary_statistics"
    PROJECTION = "projection"
    CLUSTER_HEATMAP = "cluster_heatmap"


@dataclass(frozen=True)
class ChartSpec:
    """Data and column roles for one chart."""

    kind: str
    title: str
    data: pd.DataFrame
    x: str
    y: str
    color: Optional[str] = None
    x_label: str = ""
    y_label: str = ""
    error_low: Optional[str] = None
    error_high: Optional[str] = None
    reference_line: Optional[float] = None
    hover: Tuple[str, ...] = field(default_factory=tuple)


def format_method_name(method: Union[str, EmbeddingMethod]) -> str:
    try:
        return _METHOD_NAMES[EmbeddingMethod.parse(method)]
    except ReductionError:
        return str(method)


def axis_labels(method: Union[str, EmbeddingMethod, None]) -> Tuple[str, str]:
    if method is None:
        return ("Dimension 1", "Dimension 2")
    try:
        return _AXIS_LABELS[EmbeddingMethod.parse(method)]
    except ReductionError:
        return ("Dimension 1", "Dimension 2")


def downsample_for_rendering(
    frame: pd.DataFrame,
    max_points: int = DEFAULT_MAX_RENDER_POINTS,
    random_state: int = DEFAULT_RANDOM_STATE,
) -> pd.DataFrame:
    """Seeded random subset of at most ``max_points`` rows, original order kept."""

    if max_points <= 0:
        raise ValueError("max_points must be a positive integer.")
    if frame.shape[0] <= max_points:
        return frame
    rng = np.random.default_rng(random_state)
    keep = np.sort(rng.choice(frame.shape[0], size=max_points, replace=False))
    return frame.iloc[keep]


def marker_comparison(result: AnalysisResult) -> ChartSpec:
    return ChartSpec(
        kind="box",
        title="Marker Comparison by Treatment",
        data=result.long_data,
        x="Marker",
        y="Value",
        color=result.treatment_column,
        x_label="Marker",
        y_label="Expression",
    )


def treatment_comparison(result: AnalysisResult) -> ChartSpec:
    return ChartSpec(
        kind="jitter",
        title="Treatment Comparison by Marker",
        data=result.long_data,
        x=result.treatment_column,
        y="Value",
        color="Marker",
        x_label="Treatment",
        y_label="Expression",
    )


def fold_change_table(summary: pd.DataFrame, treatment_column: str) -> pd.DataFrame:
    """Per-marker ratio of the second treatment group's mean over the first's.

    Groups are taken in the summary table's sorted order. Any count of
    distinct treatment values other than two raises :class:`CardinalityError`.
    """

    groups = pd.unique(summary[treatment_column])
    if len(groups) != FOLD_CHANGE_GROUPS:
        raise CardinalityError(
            f"Fold change needs exactly {FOLD_CHANGE_GROUPS} treatment groups in "
            f"'{treatment_column}', found {len(groups)}.",
            details={"treatment_column": treatment_column, "groups": len(groups)},
        )
    baseline, comparison = groups
    rows = []
    for marker, marker_rows in summary.groupby("Marker", sort=True):
        means: Dict[int, float] = {}
        for position, group in enumerate((baseline, comparison)):
            if pd.isna(group):
                mask = marker_rows[treatment_column].isna()
            else:
                mask = marker_rows[treatment_column] == group
            values = marker_rows.loc[mask, "Mean"]
            means[position] = float(values.iloc[0]) if not values.empty else float("nan")
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.float64(means[1]) / np.float64(means[0])
        rows.append(
            {
                "Marker": marker,
                str(baseline): means[0],
                str(comparison): means[1],
                "FoldChange": float(ratio),
            }
        )
    return pd.DataFrame(rows, columns=["Marker", str(baseline), str(comparison), "FoldChange"])


def fold_change(result: AnalysisResult) -> ChartSpec:
    return ChartSpec(
        kind="bar",
        title="Fold Change Analysis",
        data=fold_change_table(result.summary, result.treatment_column),
        x="Marker",
        y="FoldChange",
        x_label="Marker",
        y_label="Fold Change",
        reference_line=1.0,
    )


def summary_bars(result: AnalysisResult) -> ChartSpec:
    data = result.summary.copy()
    data["Lower"] = data["Mean"] - data["SD"]
    data["Upper"] = data["Mean"] + data["SD"]
    return ChartSpec(
        kind="dodged_bar",
        title="Summary Statistics by Treatment",
        data=data,
        x="Marker",
        y="Mean",
        color=result.treatment_column,
        x_label="Marker",
        y_label="Mean Expression (with SD)",
        error_low="Lower",
        error_high="Upper",
    )


def projection(
    result: AnalysisResult, max_points: Optional[int] = None
) -> ChartSpec:
    data = result.projection
    if max_points is not None:
        data = downsample_for_rendering(data, max_points, result.random_state)
    x_label, y_label = axis_labels(result.method)
    return ChartSpec(
        kind="scatter",
        title=f"{result.method.value} Projection",
        data=data,
        x="Dim1",
        y="Dim2",
        color="Treatment",
        x_label=x_label,
        y_label=y_label,
        hover=("Sample", "Cluster"),
    )


def cluster_heatmap(result: AnalysisResult) -> ChartSpec:
    return ChartSpec(
        kind="heatmap",
        title="Cluster Expression Profiles",
        data=cluster_profiles(result.clusters, result.markers),
        x="Marker",
        y="Cluster",
        color="Expression",
        x_label="Markers",
        y_label="Clusters",
    )


_BUILDERS = {
    ComparisonView.MARKER_COMPARISON: marker_comparison,
    ComparisonView.TREATMENT_COMPARISON: treatment_comparison,
    ComparisonView.FOLD_CHANGE: fold_change,
    ComparisonView.SUMMARY_BARS: summary_bars,
    ComparisonView.PROJECTION: projection,
    ComparisonView.CLUSTER_HEATMAP: cluster_heatmap,
}


def build_view(
    result: AnalysisResult,
    view: Union[str, ComparisonView],
    *,
    max_points: Optional[int] = None,
) -> ChartSpec:
    """Build one view; ``max_points`` caps the projection scatter only."""

    view = ComparisonView(view)
    if view is ComparisonView.PROJECTION:
        return projection(result, max_points)
    return _BUILDERS[view](result)


__all__ = [
    "ChartSpec",
    "ComparisonView",
    "axis_labels",
    "build_view",
    "cluster_heatmap",
    "downsample_for_rendering",
    "fold_change",
    "fold_change_table",
    "format_method_name",
    "marker_comparison",
    "projection",
    "summary_bars",
    "treatment_comparison",
]
