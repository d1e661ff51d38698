import numpy as np
import pandas as pd
import pytest

from analysis_pipeline import AnalysisRequest, execute_analysis
from comparison_views import (
    ChartSpec,
    ComparisonView,
    axis_labels,
    build_view,
    downsample_for_rendering,
    fold_change_table,
    format_method_name,
)
from error_handling import CardinalityError
from reductions import EmbeddingMethod, PCAParams


@pytest.fixture()
def pca_result(marker_table):
    request = AnalysisRequest(
        markers=("4_CD25", "4_CD69", "8_GzmB"),
        treatment_column="Treatment",
        method=EmbeddingMethod.PCA,
        method_params=PCAParams(n_components=2),
        cluster_count=2,
    )
    return execute_analysis(marker_table, request)


def test_fold_change_divides_second_group_by_first():
    summary = pd.DataFrame(
        {
            "Treatment": ["ctrl", "drug"],
            "Marker": ["M", "M"],
            "Mean": [2.0, 4.0],
        }
    )
    table = fold_change_table(summary, "Treatment")

    assert list(table.columns) == ["Marker", "ctrl", "drug", "FoldChange"]
    assert table.loc[0, "FoldChange"] == pytest.approx(2.0)


def test_fold_change_zero_baseline_is_not_finite():
    summary = pd.DataFrame(
        {"Treatment": ["a", "b"], "Marker": ["M", "M"], "Mean": [0.0, 3.0]}
    )
    table = fold_change_table(summary, "Treatment")

    assert np.isinf(table.loc[0, "FoldChange"])


@pytest.mark.parametrize("groups", [["a"], ["a", "b", "c"]])
def test_fold_change_requires_exactly_two_groups(groups):
    summary = pd.DataFrame(
        {"Treatment": groups, "Marker": ["M"] * len(groups), "Mean": [1.0] * len(groups)}
    )
    with pytest.raises(CardinalityError):
        fold_change_table(summary, "Treatment")


def test_fold_change_view_on_result(pca_result):
    spec = build_view(pca_result, "fold_change")

    assert spec.kind == "bar"
    assert spec.reference_line == 1.0
    assert spec.data["Marker"].tolist() == ["4_CD25", "4_CD69", "8_GzmB"]
    assert (spec.data["FoldChange"] > 1.0).all()


def test_every_view_builds(pca_result):
    for view in ComparisonView:
        spec = build_view(pca_result, view)
        assert isinstance(spec, ChartSpec)
        assert not spec.data.empty


def test_projection_view_labels(pca_result):
    spec = build_view(pca_result, ComparisonView.PROJECTION)

    assert (spec.x_label, spec.y_label) == ("PC 1", "PC 2")
    assert spec.title == "PCA Projection"
    assert spec.hover == ("Sample", "Cluster")


def test_summary_view_has_error_bounds(pca_result):
    spec = build_view(pca_result, ComparisonView.SUMMARY_BARS)
    data = spec.data

    np.testing.assert_allclose(data["Upper"] - data["Lower"], 2 * data["SD"])


def test_method_names_and_axis_labels():
    assert format_method_name("PCA") == "Principal Component Analysis"
    assert format_method_name(EmbeddingMethod.MDS) == "Multidimensional Scaling"
    assert format_method_name("phate") == "phate"
    assert axis_labels("tsne") == ("t-SNE 1", "t-SNE 2")
    assert axis_labels("umap") == ("UMAP 1", "UMAP 2")
    assert axis_labels(None) == ("Dimension 1", "Dimension 2")


def test_downsample_is_seeded_and_ordered():
    frame = pd.DataFrame({"value": np.arange(100)})

    first = downsample_for_rendering(frame, max_points=10, random_state=3)
    second = downsample_for_rendering(frame, max_points=10, random_state=3)

    assert first.shape[0] == 10
    assert first.index.is_monotonic_increasing
    pd.testing.assert_frame_equal(first, second)
    assert downsample_for_rendering(frame, max_points=500) is frame
    with pytest.raises(ValueError):
        downsample_for_rendering(frame, max_points=0)
