"""Per-session holder for the current analysis result."""
from __future__ import annotations

import threading
from typing import Callable, List, Optional, Union

import pandas as pd

from analysis_config import AnalysisConfig
from analysis_pipeline import AnalysisOutcome, AnalysisRequest, ProgressCallback, run_analysis
from comparison_views import ChartSpec, ComparisonView, build_view
from error_handling import AnalysisBusyError, AnalysisError, AnalysisFailure, ErrorManager
from logging_config import get_logger
from result_assembly import AnalysisResult

LOGGER = get_logger("session")

ResultListener = Callable[[AnalysisResult], None]


class AnalysisSession:
    """Single-writer slot for the latest successful result.

    ``run`` is the only writer. Listeners are told after the slot changes; a
    failed run leaves the previous result in place.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        *,
        error_manager: Optional[ErrorManager] = None,
    ) -> None:
        self.config = config or AnalysisConfig.from_env()
        self.errors = error_manager or ErrorManager()
        self._run_lock = threading.Lock()
        self._current: Optional[AnalysisResult] = None
        self._listeners: List[ResultListener] = []

    @property
    def current(self) -> Optional[AnalysisResult]:
        return self._current

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def build_request(self, markers, treatment_column: str, **overrides) -> AnalysisRequest:
        """Request with seed, restarts and sample column filled from config."""

        values = {
            "random_state": self.config.random_state,
            "kmeans_restarts": self.config.kmeans_restarts,
            "sample_column": self.config.sample_column,
        }
        values.update(overrides)
        return AnalysisRequest(markers=tuple(markers), treatment_column=treatment_column, **values)

    def run(
        self,
        table: pd.DataFrame,
        request: AnalysisRequest,
        progress: Optional[ProgressCallback] = None,
    ) -> AnalysisOutcome:
        if not self._run_lock.acquire(blocking=False):
            failure = AnalysisFailure.from_error(
                AnalysisBusyError("An analysis is already running for this session.")
            )
            LOGGER.warning("Rejected concurrent analysis request.")
            self.errors.register_failure(failure)
            return failure
        try:
            outcome = run_analysis(table, request, progress)
            if isinstance(outcome, AnalysisFailure):
                self.errors.register_failure(outcome)
                return outcome
            # Slot write and notifications stay under the run lock.
            self._current = outcome
            for listener in list(self._listeners):
                listener(outcome)
            return outcome
        finally:
            self._run_lock.release()

    def view(self, view: Union[str, ComparisonView]) -> Union[ChartSpec, AnalysisFailure]:
        """Chart for the current result; view-specific errors stay local to the view."""

        if self._current is None:
            return AnalysisFailure(kind="no_result", message="Run an analysis first.")
        try:
            return build_view(self._current, view, max_points=self.config.max_render_points)
        except AnalysisError as exc:
            failure = AnalysisFailure.from_error(exc)
            self.errors.register_failure(failure)
            return failure
