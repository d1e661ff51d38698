"""Dimensionality reduction methods with per-method parameter validation."""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple, Type, Union

import numpy as np
from scipy import linalg
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.manifold import TSNE
from threadpoolctl import threadpool_limits

from analysis_config import DEFAULT_RANDOM_STATE
from error_handling import AnalysisError, ParameterInfeasibilityError
from logging_config import get_logger

try:  # pragma: no cover - optional dependency guard
    import umap  # type: ignore[import]
except ImportError:  # pragma: no cover
    umap = None  # type: ignore[assignment]

LOGGER = get_logger("reductions")


class ReductionError(AnalysisError):
    """Raised when a reduction backend is unavailable or the method is unknown."""

    kind = "reduction"


@contextmanager
def single_threaded() -> Iterator[None]:
    """Pin OpenMP/BLAS to one thread so seeded runs repeat bit-for-bit."""

    with threadpool_limits(limits=1):
        yield


class EmbeddingMethod(str, Enum):
    TSNE = "t-SNE"
    UMAP = "UMAP"
    PCA = "PCA"
    MDS = "MDS"

    @classmethod
    def parse(cls, value: Union[str, "EmbeddingMethod"]) -> "EmbeddingMethod":
        """Accept enum members, display names and loose spellings like ``tsne``."""

        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "").replace("_", "")
        for member in cls:
            if normalized in {member.name.lower(), member.value.lower().replace("-", "")}:
                return member
        raise ReductionError(f"Unknown reduction method '{value}'.")


@dataclass(frozen=True)
class TSNEParams:
    perplexity: int = 5


@dataclass(frozen=True)
class UMAPParams:
    n_neighbors: int = 5
    min_dist: float = 0.1


@dataclass(frozen=True)
class PCAParams:
    n_components: int = 2


@dataclass(frozen=True)
class MDSParams:
    """Classical scaling on Euclidean distances has no tunable parameters."""


MethodParams = Union[TSNEParams, UMAPParams, PCAParams, MDSParams]


@dataclass(frozen=True)
class Embedding:
    """Low-dimensional coordinates aligned row-for-row with the feature matrix."""

    coordinates: np.ndarray
    method: EmbeddingMethod
    effective_params: Dict[str, object] = field(default_factory=dict)

    @property
    def n_rows(self) -> int:
        return int(self.coordinates.shape[0])

    @property
    def n_components(self) -> int:
        return int(self.coordinates.shape[1])


def effective_perplexity(requested: int, n_rows: int) -> int:
    return min(int(requested), n_rows // 3)


def effective_neighbors(requested: int, n_rows: int) -> int:
    return min(int(requested), n_rows - 1)


class Embedder:
    """Base class for one reduction variant."""

    method: EmbeddingMethod
    params_type: Type

    def check_params(self, params: MethodParams) -> None:
        """Validate the parameter domain without looking at the data."""

        if not isinstance(params, self.params_type):
            raise ParameterInfeasibilityError(
                f"{self.method.value} expects {self.params_type.__name__}, "
                f"got {type(params).__name__}."
            )

    def embed(self, matrix: np.ndarray, params: MethodParams, random_state: int) -> Embedding:
        raise NotImplementedError


class TSNEEmbedder(Embedder):
    method = EmbeddingMethod.TSNE
    params_type = TSNEParams

    def check_params(self, params: MethodParams) -> None:
        super().check_params(params)
        if int(params.perplexity) < 2:
            raise ParameterInfeasibilityError(
                "t-SNE perplexity must be at least 2.",
                details={"perplexity": params.perplexity},
            )

    def embed(self, matrix: np.ndarray, params: MethodParams, random_state: int) -> Embedding:
        self.check_params(params)
        n_rows = matrix.shape[0]
        perplexity = effective_perplexity(params.perplexity, n_rows)
        if perplexity < 1:
            raise ParameterInfeasibilityError(
                f"t-SNE needs at least 3 rows; perplexity clamps to {perplexity} for {n_rows} row(s).",
                details={"requested_perplexity": params.perplexity, "rows": n_rows},
            )
        if perplexity != params.perplexity:
            LOGGER.info(
                "Perplexity clamped from %s to %s for %s rows.", params.perplexity, perplexity, n_rows
            )
        # Random initialisation keeps single-marker selections valid.
        model = TSNE(
            n_components=2,
            perplexity=float(perplexity),
            init="random",
            learning_rate="auto",
            random_state=random_state,
        )
        with single_threaded():
            coordinates = model.fit_transform(matrix)
        return Embedding(
            coordinates=np.asarray(coordinates, dtype=float),
            method=self.method,
            effective_params={"perplexity": perplexity},
        )


class UMAPEmbedder(Embedder):
    method = EmbeddingMethod.UMAP
    params_type = UMAPParams

    def check_params(self, params: MethodParams) -> None:
        super().check_params(params)
        if int(params.n_neighbors) < 2:
            raise ParameterInfeasibilityError(
                "UMAP n_neighbors must be at least 2.",
                details={"n_neighbors": params.n_neighbors},
            )
        if not 0.0 <= float(params.min_dist) <= 1.0:
            raise ParameterInfeasibilityError(
                "UMAP min_dist must lie between 0 and 1.",
                details={"min_dist": params.min_dist},
            )

    def embed(self, matrix: np.ndarray, params: MethodParams, random_state: int) -> Embedding:
        self.check_params(params)
        if umap is None:
            raise ReductionError("Install 'umap-learn' to run UMAP reductions.")
        n_rows = matrix.shape[0]
        n_neighbors = effective_neighbors(params.n_neighbors, n_rows)
        if n_neighbors < 2:
            raise ParameterInfeasibilityError(
                f"UMAP needs at least 3 rows; n_neighbors clamps to {n_neighbors}.",
                details={"requested_n_neighbors": params.n_neighbors, "rows": n_rows},
            )
        if n_neighbors != params.n_neighbors:
            LOGGER.info(
                "n_neighbors clamped from %s to %s for %s rows.",
                params.n_neighbors,
                n_neighbors,
                n_rows,
            )
        # Spectral initialisation needs more rows than components + 1.
        init = "random" if n_rows <= 3 else "spectral"
        reducer = umap.UMAP(
            n_components=2,
            n_neighbors=n_neighbors,
            min_dist=float(params.min_dist),
            metric="euclidean",
            init=init,
            random_state=random_state,
        )
        coordinates = reducer.fit_transform(matrix)
        return Embedding(
            coordinates=np.asarray(coordinates, dtype=float),
            method=self.method,
            effective_params={"n_neighbors": n_neighbors, "min_dist": float(params.min_dist)},
        )


def _safe_scale(values: np.ndarray) -> np.ndarray:
    scale = np.asarray(values, dtype=float).copy()
    scale[~np.isfinite(scale) | (scale == 0)] = 1.0
    return scale


def standardize(matrix: np.ndarray) -> np.ndarray:
    """Centre each column and scale it to unit sample variance."""

    mean = matrix.mean(axis=0)
    if matrix.shape[0] > 1:
        scale = _safe_scale(matrix.std(axis=0, ddof=1))
    else:
        scale = np.ones(matrix.shape[1])
    return (matrix - mean) / scale


class PCAEmbedder(Embedder):
    method = EmbeddingMethod.PCA
    params_type = PCAParams

    def check_params(self, params: MethodParams) -> None:
        super().check_params(params)
        if not 2 <= int(params.n_components) <= 10:
            raise ParameterInfeasibilityError(
                "PCA n_components must be between 2 and 10.",
                details={"n_components": params.n_components},
            )

    def embed(self, matrix: np.ndarray, params: MethodParams, random_state: int) -> Embedding:
        self.check_params(params)
        n_components = int(params.n_components)
        n_rows, n_features = matrix.shape
        if n_components > n_features:
            raise ParameterInfeasibilityError(
                f"PCA requested {n_components} components but only {n_features} marker(s) are selected.",
                details={"n_components": n_components, "features": n_features},
            )
        if n_components > n_rows:
            raise ParameterInfeasibilityError(
                f"PCA requested {n_components} components but only {n_rows} row(s) are available.",
                details={"n_components": n_components, "rows": n_rows},
            )
        # Full SVD; independent of the run seed.
        model = PCA(n_components=n_components, svd_solver="full")
        coordinates = model.fit_transform(standardize(matrix))
        return Embedding(
            coordinates=np.asarray(coordinates, dtype=float),
            method=self.method,
            effective_params={
                "n_components": n_components,
                "explained_variance_ratio": [float(v) for v in model.explained_variance_ratio_],
            },
        )


def classical_mds(matrix: np.ndarray, n_components: int = 2) -> np.ndarray:
    """Torgerson scaling of the Euclidean distance matrix."""

    distances = squareform(pdist(matrix, metric="euclidean"))
    n_rows = distances.shape[0]
    centering = np.eye(n_rows) - np.full((n_rows, n_rows), 1.0 / n_rows)
    gram = -0.5 * centering @ (distances ** 2) @ centering
    eigenvalues, eigenvectors = linalg.eigh(gram)
    order = np.argsort(eigenvalues)[::-1][:n_components]
    # Dimensions without positive spread collapse to zero.
    values = np.clip(eigenvalues[order], 0.0, None)
    vectors = eigenvectors[:, order]
    signs = np.sign(vectors[np.abs(vectors).argmax(axis=0), np.arange(vectors.shape[1])])
    signs[signs == 0] = 1.0
    coordinates = vectors * signs * np.sqrt(values)
    if coordinates.shape[1] < n_components:
        padding = np.zeros((n_rows, n_components - coordinates.shape[1]))
        coordinates = np.hstack([coordinates, padding])
    return coordinates


class MDSEmbedder(Embedder):
    method = EmbeddingMethod.MDS
    params_type = MDSParams

    def embed(self, matrix: np.ndarray, params: MethodParams, random_state: int) -> Embedding:
        self.check_params(params)
        return Embedding(
            coordinates=classical_mds(matrix, n_components=2),
            method=self.method,
            effective_params={"metric": "euclidean", "n_components": 2},
        )


EMBEDDERS: Dict[EmbeddingMethod, Embedder] = {
    embedder.method: embedder
    for embedder in (TSNEEmbedder(), UMAPEmbedder(), PCAEmbedder(), MDSEmbedder())
}


def default_params(method: Union[str, EmbeddingMethod]) -> MethodParams:
    return EMBEDDERS[EmbeddingMethod.parse(method)].params_type()


def params_from_mapping(
    method: Union[str, EmbeddingMethod], values: Optional[Mapping[str, object]] = None
) -> MethodParams:
    """Build the method's parameter object, ignoring keys other methods use."""

    params_type = EMBEDDERS[EmbeddingMethod.parse(method)].params_type
    defaults = asdict(params_type())
    payload = {}
    for key, default in defaults.items():
        value = (values or {}).get(key)
        if value is None:
            payload[key] = default
            continue
        try:
            payload[key] = type(default)(value)
        except (TypeError, ValueError) as exc:
            raise ParameterInfeasibilityError(
                f"Parameter '{key}' must be a {type(default).__name__}, got {value!r}."
            ) from exc
    return params_type(**payload)


def check_method_params(method: Union[str, EmbeddingMethod], params: MethodParams) -> None:
    EMBEDDERS[EmbeddingMethod.parse(method)].check_params(params)


class ReductionRunner:
    """Runs one embedding variant and times it."""

    def run(
        self,
        method: Union[str, EmbeddingMethod],
        data: np.ndarray,
        params: Optional[MethodParams] = None,
        *,
        random_state: int = DEFAULT_RANDOM_STATE,
    ) -> Tuple[Embedding, float]:
        start = time.time()
        embedder = EMBEDDERS[EmbeddingMethod.parse(method)]
        if params is None:
            params = embedder.params_type()
        LOGGER.info(
            "Running %s on %s rows x %s markers.",
            embedder.method.value,
            data.shape[0],
            data.shape[1],
        )
        embedding = embedder.embed(np.asarray(data, dtype=float), params, random_state)
        elapsed = time.time() - start
        LOGGER.info(
            "%s finished in %.2fs with %s.", embedder.method.value, elapsed, embedding.effective_params
        )
        return embedding, elapsed


__all__ = [
    "EMBEDDERS",
    "Embedder",
    "Embedding",
    "EmbeddingMethod",
    "MDSParams",
    "MethodParams",
    "PCAParams",
    "ReductionError",
    "ReductionRunner",
    "TSNEParams",
    "UMAPParams",
    "check_method_params",
    "classical_mds",
    "default_params",
    "effective_neighbors",
    "effective_perplexity",
    "params_from_mapping",
    "single_threaded",
    "standardize",
]
