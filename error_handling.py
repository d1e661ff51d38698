"""Analysis error taxonomy and utilities for presenting actionable guidance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional


class AnalysisError(RuntimeError):
    """Base class for failures raised by the analysis core."""

    kind = "analysis"

    def __init__(self, message: str, *, details: Optional[Dict[str, object]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, object] = dict(details or {})


class DataInsufficiencyError(AnalysisError):
    """Raised when too few complete rows remain after missing-value filtering."""

    kind = "data_insufficiency"


class ParameterInfeasibilityError(AnalysisError):
    """Raised when a method parameter cannot be satisfied by the available data."""

    kind = "parameter_infeasibility"


class CardinalityError(AnalysisError):
    """Raised when a grouping column has the wrong number of distinct values."""

    kind = "cardinality"


class ColumnNotFoundError(AnalysisError):
    """Raised when a requested column does not exist in the raw table."""

    kind = "column_not_found"


class AnalysisBusyError(AnalysisError):
    """Raised when a run is requested while another run is still in flight."""

    kind = "busy"


class AlignmentError(AnalysisError):
    """Raised when positionally aligned arrays disagree in length."""

    kind = "alignment"


@dataclass(frozen=True)
class AnalysisFailure:
    """Tagged failure returned to callers instead of an exception."""

    kind: str
    message: str
    details: Dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: AnalysisError) -> "AnalysisFailure":
        return cls(kind=error.kind, message=error.message, details=dict(error.details))

    @property
    def ok(self) -> bool:
        return False


_KIND_TITLES = {
    DataInsufficiencyError.kind: "Not enough data",
    ParameterInfeasibilityError.kind: "Invalid method parameters",
    CardinalityError.kind: "Unsupported grouping",
    ColumnNotFoundError.kind: "Missing column",
    AnalysisBusyError.kind: "Analysis already running",
    AlignmentError.kind: "Internal alignment failure",
}

_KIND_GUIDANCE = {
    DataInsufficiencyError.kind: (
        "Select markers with fewer missing or non-numeric values; at least three "
        "complete rows are required."
    ),
    ParameterInfeasibilityError.kind: (
        "Lower the perplexity, neighbour count or component count, or add more rows."
    ),
    CardinalityError.kind: (
        "Fold change compares exactly two treatment groups; pick a column with two values."
    ),
    ColumnNotFoundError.kind: (
        "Check the marker and treatment selections against the uploaded table's columns."
    ),
    AnalysisBusyError.kind: "Wait for the current analysis to finish before starting another.",
    AlignmentError.kind: "Rerun the analysis; report the issue if it persists.",
}


@dataclass
class ErrorRecord:
    """Captured analysis error along with suggested guidance."""

    title: str
    message: str
    guidance: str
    timestamp: datetime
    kind: str = AnalysisError.kind
    details: Optional[str] = None

    @property
    def formatted_message(self) -> str:
        """Return a formatted message including actionable guidance."""

        guidance_block = f"Guidance: {self.guidance}" if self.guidance else ""
        detail_block = f"\nDetails: {self.details}" if self.details else ""
        parts = [self.message]
        if guidance_block:
            parts.append("\n\n" + guidance_block)
        if detail_block:
            parts.append(detail_block)
        return "".join(parts)


class ErrorManager:
    """Maintain structured error records for display by the caller."""

    def __init__(self, *, max_entries: int = 100) -> None:
        self.max_entries = max_entries
        self._records: List[ErrorRecord] = []
        self._log_path: Optional[Path] = None

    def set_log_path(self, log_path: Path) -> None:
        """Associate an application log path for troubleshooting guidance."""

        self._log_path = log_path

    def register_failure(
        self,
        failure: AnalysisFailure,
        *,
        hints: Optional[Iterable[str]] = None,
    ) -> ErrorRecord:
        """Capture an analysis failure and derive remediation steps from its kind."""

        suggestions: List[str] = list(hints or [])
        guidance = _KIND_GUIDANCE.get(failure.kind)
        if guidance:
            suggestions.append(guidance)
        else:
            suggestions.append("Review the input values and retry the operation.")
        if self._log_path is not None:
            suggestions.append(f"Check the application log at '{self._log_path}' for details.")

        details = None
        if failure.details:
            details = ", ".join(f"{key}={value}" for key, value in sorted(failure.details.items()))

        record = ErrorRecord(
            title=_KIND_TITLES.get(failure.kind, "Analysis failed"),
            message=failure.message,
            guidance=" ".join(suggestions),
            kind=failure.kind,
            details=details,
            timestamp=datetime.now(UTC),
        )
        self._records.append(record)
        self._records = self._records[-self.max_entries :]
        return record

    def get_recent(self) -> List[ErrorRecord]:
        """Return a copy of the captured error records."""

        return list(self._records)

    def clear(self) -> None:
        """Forget all captured errors."""

        self._records.clear()


__all__ = [
    "AlignmentError",
    "AnalysisBusyError",
    "AnalysisError",
    "AnalysisFailure",
    "CardinalityError",
    "ColumnNotFoundError",
    "DataInsufficiencyError",
    "ErrorManager",
    "ErrorRecord",
    "ParameterInfeasibilityError",
]
