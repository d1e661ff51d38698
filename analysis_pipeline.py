"""End-to-end analysis run: features, embedding, clusters, statistics.

``run_analysis`` is the single entry point used by the session layer and the
CLI. It never raises for input problems; every :class:`AnalysisError` comes
back as an :class:`AnalysisFailure` so callers can show a message without a
traceback.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Union

import pandas as pd

from analysis_config import DEFAULT_KMEANS_RESTARTS, DEFAULT_RANDOM_STATE, DEFAULT_SAMPLE_COLUMN
from clustering_ops import assign_clusters
from error_handling import AnalysisError, AnalysisFailure, ParameterInfeasibilityError
from feature_selection import ensure_columns_exist, select_features
from logging_config import get_logger
from reductions import (
    EmbeddingMethod,
    MethodParams,
    ReductionRunner,
    check_method_params,
    default_params,
)
from result_assembly import AnalysisResult, assemble_result, long_format

LOGGER = get_logger("pipeline")


class AnalysisPhase(str, Enum):
    RESHAPE = "reshape"
    EMBEDDING = "embedding"
    CLUSTERING = "clustering"
    STATISTICS = "statistics"


PHASE_PROGRESS = {
    AnalysisPhase.RESHAPE: 0.2,
    AnalysisPhase.EMBEDDING: 0.4,
    AnalysisPhase.CLUSTERING: 0.7,
    AnalysisPhase.STATISTICS: 0.9,
}

ProgressCallback = Callable[[AnalysisPhase, float, str], None]


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything one run needs besides the table itself."""

    markers: Sequence[str]
    treatment_column: str
    method: Union[str, EmbeddingMethod] = EmbeddingMethod.TSNE
    method_params: Optional[MethodParams] = None
    cluster_count: int = 3
    random_state: int = DEFAULT_RANDOM_STATE
    sample_column: Optional[str] = DEFAULT_SAMPLE_COLUMN
    kmeans_restarts: int = DEFAULT_KMEANS_RESTARTS


AnalysisOutcome = Union[AnalysisResult, AnalysisFailure]


def _notify(progress: Optional[ProgressCallback], phase: AnalysisPhase, detail: str) -> None:
    LOGGER.debug("Phase %s: %s", phase.value, detail)
    if progress is not None:
        progress(phase, PHASE_PROGRESS[phase], detail)


def validate_request(table: pd.DataFrame, request: AnalysisRequest) -> MethodParams:
    """Check columns and parameter domains before any computation starts."""

    ensure_columns_exist(table, list(request.markers) + [request.treatment_column])
    method = EmbeddingMethod.parse(request.method)
    params = request.method_params if request.method_params is not None else default_params(method)
    check_method_params(method, params)
    if int(request.cluster_count) < 1:
        raise ParameterInfeasibilityError(
            "Cluster count must be at least 1.",
            details={"cluster_count": request.cluster_count},
        )
    return params


def execute_analysis(
    table: pd.DataFrame,
    request: AnalysisRequest,
    progress: Optional[ProgressCallback] = None,
    *,
    runner: Optional[ReductionRunner] = None,
) -> AnalysisResult:
    """Run the pipeline, raising :class:`AnalysisError` subclasses on failure."""

    params = validate_request(table, request)
    method = EmbeddingMethod.parse(request.method)
    runner = runner or ReductionRunner()
    timings = {}

    _notify(progress, AnalysisPhase.RESHAPE, "Reshaping data...")
    long_data = long_format(table, request.markers, request.treatment_column)

    _notify(progress, AnalysisPhase.EMBEDDING, f"Running {method.value}...")
    features = select_features(table, request.markers)
    embedding, timings["embedding"] = runner.run(
        method, features.values, params, random_state=request.random_state
    )

    _notify(progress, AnalysisPhase.CLUSTERING, "Clustering data...")
    start = time.time()
    clusters = assign_clusters(
        features.values,
        request.cluster_count,
        random_state=request.random_state,
        n_init=request.kmeans_restarts,
    )
    timings["clustering"] = time.time() - start

    _notify(progress, AnalysisPhase.STATISTICS, "Calculating statistics...")
    return assemble_result(
        table,
        features,
        embedding,
        clusters,
        request.treatment_column,
        random_state=request.random_state,
        sample_column=request.sample_column,
        long_data=long_data,
        timings=timings,
    )


def run_analysis(
    table: pd.DataFrame,
    request: AnalysisRequest,
    progress: Optional[ProgressCallback] = None,
) -> AnalysisOutcome:
    """Run the pipeline and return either the result or a tagged failure."""

    start = time.time()
    LOGGER.info(
        "Analysis started: method=%s markers=%s treatment=%s clusters=%s seed=%s",
        request.method,
        list(request.markers),
        request.treatment_column,
        request.cluster_count,
        request.random_state,
    )
    try:
        result = execute_analysis(table, request, progress)
    except AnalysisError as exc:
        LOGGER.warning("Analysis failed (%s): %s", exc.kind, exc.message)
        return AnalysisFailure.from_error(exc)
    LOGGER.info(
        "Analysis complete: %s rows in %.2fs (summary divergence %s rows).",
        result.n_rows,
        time.time() - start,
        result.summary_row_divergence,
    )
    return result


__all__ = [
    "AnalysisOutcome",
    "AnalysisPhase",
    "AnalysisRequest",
    "PHASE_PROGRESS",
    "ProgressCallback",
    "execute_analysis",
    "run_analysis",
    "validate_request",
]
