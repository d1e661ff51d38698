"""Environment-driven configuration for analysis runs."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_RANDOM_STATE = 42
DEFAULT_KMEANS_RESTARTS = 10
DEFAULT_MARKER_PATTERN = r"^[48]"
DEFAULT_SAMPLE_COLUMN = "Sample"
DEFAULT_MAX_RENDER_POINTS = 10_000


def _env_int(value: Optional[str], default: int, *, minimum: int = 0) -> int:
    """Interpret an integer environment variable, falling back on bad input."""

    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        return default
    if parsed < minimum:
        return default
    return parsed


@dataclass(frozen=True)
class AnalysisConfig:
    """Defaults shared by the session layer and the CLI."""

    random_state: int = DEFAULT_RANDOM_STATE
    kmeans_restarts: int = DEFAULT_KMEANS_RESTARTS
    marker_pattern: str = DEFAULT_MARKER_PATTERN
    sample_column: str = DEFAULT_SAMPLE_COLUMN
    max_render_points: int = DEFAULT_MAX_RENDER_POINTS

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Initialise configuration from environment variables."""

        return cls(
            random_state=_env_int(
                os.environ.get("FLOW_ANALYSIS_RANDOM_STATE"), DEFAULT_RANDOM_STATE
            ),
            kmeans_restarts=_env_int(
                os.environ.get("FLOW_ANALYSIS_KMEANS_RESTARTS"),
                DEFAULT_KMEANS_RESTARTS,
                minimum=1,
            ),
            marker_pattern=os.environ.get(
                "FLOW_ANALYSIS_MARKER_PATTERN", DEFAULT_MARKER_PATTERN
            ),
            sample_column=os.environ.get("FLOW_ANALYSIS_SAMPLE_COLUMN", DEFAULT_SAMPLE_COLUMN),
            max_render_points=_env_int(
                os.environ.get("FLOW_ANALYSIS_MAX_RENDER_POINTS"),
                DEFAULT_MAX_RENDER_POINTS,
                minimum=1,
            ),
        )


__all__ = [
    "AnalysisConfig",
    "DEFAULT_KMEANS_RESTARTS",
    "DEFAULT_MARKER_PATTERN",
    "DEFAULT_MAX_RENDER_POINTS",
    "DEFAULT_RANDOM_STATE",
    "DEFAULT_SAMPLE_COLUMN",
]
