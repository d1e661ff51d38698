import numpy as np
import pytest

from clustering_ops import (
    assign_clusters,
    cluster_profiles,
    cluster_sizes,
    effective_cluster_count,
)
from error_handling import AlignmentError, ParameterInfeasibilityError


def _blobs(seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    centres = np.array([[0.0, 0.0], [10.0, 10.0], [0.0, 10.0]])
    return np.vstack([rng.normal(centre, 0.5, size=(20, 2)) for centre in centres])


def test_cluster_count_clamped_to_rows():
    assignment = assign_clusters(np.array([[0.0, 0.0], [5.0, 5.0]]), 5, random_state=42)

    assert effective_cluster_count(5, 2) == 2
    assert assignment.requested_k == 5
    assert assignment.effective_k == 2
    assert set(assignment.labels.tolist()) == {1, 2}


def test_labels_are_one_based_and_recover_blobs():
    data = _blobs()
    assignment = assign_clusters(data, 3, random_state=42)

    assert assignment.labels.min() == 1
    assert assignment.labels.max() == 3
    for start in (0, 20, 40):
        assert len(set(assignment.labels[start : start + 20].tolist())) == 1
    assert sorted(cluster_sizes(assignment).values()) == [20, 20, 20]
    assert list(assignment.as_categorical().categories) == [1, 2, 3]


def test_assignment_is_reproducible_for_fixed_seed():
    rng = np.random.default_rng(5)
    data = rng.normal(size=(50, 3))

    first = assign_clusters(data, 4, random_state=11)
    second = assign_clusters(data, 4, random_state=11)

    np.testing.assert_array_equal(first.labels, second.labels)
    np.testing.assert_array_equal(first.centers, second.centers)


def test_cluster_count_below_one_is_rejected():
    with pytest.raises(ParameterInfeasibilityError):
        assign_clusters(_blobs(), 0, random_state=42)


def test_profiles_are_long_format():
    assignment = assign_clusters(_blobs(), 3, random_state=42)
    profiles = cluster_profiles(assignment, ["CD4", "CD8"])

    assert list(profiles.columns) == ["Cluster", "Marker", "Expression"]
    assert profiles.shape[0] == 6
    assert set(profiles["Cluster"]) == {"Cluster 1", "Cluster 2", "Cluster 3"}

    with pytest.raises(AlignmentError):
        cluster_profiles(assignment, ["CD4"])
