import numpy as np
import pandas as pd
import pytest

from error_handling import ColumnNotFoundError, DataInsufficiencyError
from feature_selection import (
    candidate_treatment_columns,
    describe_columns,
    detect_marker_columns,
    select_features,
)


def _mixed_table() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "4_CD25": [1.0, 2.0, "x", 4.0, 5.0],
            "8_CD8": [1.0, None, 3.0, 4.0, 5.0],
            "Treatment": ["A", "A", "B", "B", "B"],
        },
        index=["r0", "r1", "r2", "r3", "r4"],
    )


def test_select_features_drops_incomplete_rows():
    features = select_features(_mixed_table(), ["4_CD25", "8_CD8"])

    assert features.n_rows == 3
    assert list(features.row_index) == ["r0", "r3", "r4"]
    assert features.positions.tolist() == [0, 3, 4]
    np.testing.assert_array_equal(features.values, [[1.0, 1.0], [4.0, 4.0], [5.0, 5.0]])


def test_select_features_preserves_column_order():
    table = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [10.0, 20.0, 30.0]})
    features = select_features(table, ["b", "a"])

    assert features.markers == ("b", "a")
    np.testing.assert_array_equal(features.values[:, 0], [10.0, 20.0, 30.0])
    assert list(features.to_frame().columns) == ["b", "a"]


def test_select_features_requires_three_complete_rows():
    table = pd.DataFrame({"a": [1.0, 2.0, None], "b": [1.0, 2.0, 3.0]})
    with pytest.raises(DataInsufficiencyError) as excinfo:
        select_features(table, ["a", "b"])
    assert excinfo.value.details["complete_rows"] == 2


def test_select_features_reports_missing_columns():
    with pytest.raises(ColumnNotFoundError) as excinfo:
        select_features(_mixed_table(), ["4_CD25", "CD3"])
    assert excinfo.value.details["missing"] == ["CD3"]


def test_select_features_rejects_empty_selection():
    with pytest.raises(ColumnNotFoundError):
        select_features(_mixed_table(), [])


def test_marker_and_treatment_detection():
    table = pd.DataFrame(
        {
            "4_CD25": [1.0, 2.0],
            "8_CD8": [3.0, 4.0],
            "CD3": [5.0, 6.0],
            "Treatment": ["ctrl", "drug"],
            "Group": pd.Categorical(["x", "y"]),
        }
    )

    assert detect_marker_columns(table) == ["4_CD25", "8_CD8"]
    assert detect_marker_columns(table, r"^CD") == ["CD3"]
    assert candidate_treatment_columns(table) == ["Treatment", "Group"]

    inventory = describe_columns(table)
    assert inventory["numeric"] == ["4_CD25", "8_CD8", "CD3"]
    assert inventory["categorical"] == ["Group"]
    assert inventory["text"] == ["Treatment"]


def test_infinite_values_count_as_missing():
    table = pd.DataFrame(
        {
            "4_CD25": [1.0, "inf", 3.0, 4.0],
            "8_CD8": [1.0, 2.0, float("-inf"), 4.0],
        }
    )
    features = select_features(table, ["4_CD25", "8_CD8"], min_rows=2)

    assert features.positions.tolist() == [0, 3]
    assert np.isfinite(features.values).all()
