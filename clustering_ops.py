"""Cluster assignment helpers for the analysis pipeline.

These helpers intentionally avoid any UI dependencies so that they can be
tested in isolation. The pipeline wires them into a run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from analysis_config import DEFAULT_KMEANS_RESTARTS
from error_handling import AlignmentError, ParameterInfeasibilityError
from logging_config import get_logger
from reductions import single_threaded

LOGGER = get_logger("clustering")


@dataclass(frozen=True)
class ClusterAssignment:
    """k-means outcome co-indexed with the feature matrix rows."""

    labels: np.ndarray
    requested_k: int
    effective_k: int
    centers: np.ndarray
    inertia: float

    @property
    def n_rows(self) -> int:
        return int(self.labels.shape[0])

    def as_categorical(self) -> pd.Categorical:
        return pd.Categorical(self.labels, categories=list(range(1, self.effective_k + 1)))


def effective_cluster_count(requested_k: int, n_rows: int) -> int:
    return min(int(requested_k), int(n_rows))


def assign_clusters(
    matrix: np.ndarray,
    requested_k: int,
    *,
    random_state: int,
    n_init: int = DEFAULT_KMEANS_RESTARTS,
) -> ClusterAssignment:
    """Partition ``matrix`` rows with k-means, keeping the lowest-inertia restart."""

    if int(requested_k) < 1:
        raise ParameterInfeasibilityError(
            "Cluster count must be at least 1.", details={"cluster_count": requested_k}
        )
    matrix = np.asarray(matrix, dtype=float)
    n_rows = matrix.shape[0]
    if n_rows < 1:
        raise ParameterInfeasibilityError("Cannot cluster an empty feature matrix.")
    k = effective_cluster_count(requested_k, n_rows)
    if k != int(requested_k):
        LOGGER.info("Cluster count clamped from %s to %s for %s rows.", requested_k, k, n_rows)

    model = KMeans(n_clusters=k, n_init=max(1, int(n_init)), random_state=random_state)
    with single_threaded():
        raw_labels = model.fit_predict(matrix)
    return ClusterAssignment(
        labels=raw_labels.astype(int) + 1,
        requested_k=int(requested_k),
        effective_k=k,
        centers=np.asarray(model.cluster_centers_, dtype=float),
        inertia=float(model.inertia_),
    )


def cluster_sizes(assignment: ClusterAssignment) -> Dict[int, int]:
    labels, counts = np.unique(assignment.labels, return_counts=True)
    return {int(label): int(count) for label, count in zip(labels, counts)}


def cluster_profiles(assignment: ClusterAssignment, markers: Sequence[str]) -> pd.DataFrame:
    """Long-format centre table (``Cluster``, ``Marker``, ``Expression``) for heatmaps."""

    markers = list(markers)
    if assignment.centers.shape[1] != len(markers):
        raise AlignmentError(
            "Cluster centres and marker list are misaligned.",
            details={"centers": assignment.centers.shape[1], "markers": len(markers)},
        )
    wide = pd.DataFrame(assignment.centers, columns=markers)
    wide.insert(0, "Cluster", [f"Cluster {idx + 1}" for idx in range(wide.shape[0])])
    return wide.melt(id_vars="Cluster", var_name="Marker", value_name="Expression")


__all__ = [
    "ClusterAssignment",
    "assign_clusters",
    "cluster_profiles",
    "cluster_sizes",
    "effective_cluster_count",
]
