"""Tests for skinning-weight loading."""

import numpy as np
import pytest

from rigforge.core.errors import SkinningLoadError
from rigforge.loaders.skin_weights import SkinWeights, load_skin_weights, parse_skin_weights

WEIGHTS = """3 4
0 0 1.0
1 2 0.25 1 0 0.75
2 1 0.2 2 3 0.5
2 2 0.3
"""


def test_parse_sorted_and_padded():
    weights = parse_skin_weights(WEIGHTS)
    assert weights.num_vertices == 3
    assert weights.num_joints == 4
    assert weights.max_influences == 3

    np.testing.assert_array_equal(weights.joints[0], [0, 0, 0])
    np.testing.assert_array_equal(weights.weights[0], [1.0, 0.0, 0.0])
    np.testing.assert_array_equal(weights.joints[1], [0, 2, 0])
    np.testing.assert_array_equal(weights.weights[1], [0.75, 0.25, 0.0])
    np.testing.assert_array_equal(weights.joints[2], [3, 2, 1])
    np.testing.assert_array_equal(weights.weights[2], [0.5, 0.3, 0.2])


def test_weights_descending_and_sum_to_one():
    weights = parse_skin_weights(WEIGHTS)
    assert np.all(np.diff(weights.weights, axis=1) <= 0)
    np.testing.assert_allclose(weights.weights.sum(axis=1), 1.0)


def test_vertex_without_weight():
    with pytest.raises(SkinningLoadError, match="Vertex 1"):
        parse_skin_weights("2 2\n0 0 0.5 0 1 0.5\n1 0 0.0\n")


def test_fewer_than_two_influences():
    with pytest.raises(SkinningLoadError, match="at least 2"):
        SkinWeights.from_entries([[(0, 1.0)], [(1, 1.0)]], num_joints=2)


def test_row_count_mismatch():
    with pytest.raises(SkinningLoadError, match="mesh has 5"):
        parse_skin_weights(WEIGHTS, num_vertices=5)


@pytest.mark.parametrize("text", [
    "",
    "three 4\n",
    "2 2\n0 0\n",
    "2 2\n0 5 1.0 1 0 1.0\n",
    "2 2\n7 0 1.0 1 0 1.0\n",
    "2 2\n0 0 heavy 1 0 1.0\n",
])
def test_malformed(text):
    with pytest.raises(SkinningLoadError):
        parse_skin_weights(text)


def test_load_from_file(tmp_path):
    path = tmp_path / "skinning.weights"
    path.write_text(WEIGHTS)
    assert load_skin_weights(path, num_vertices=3).max_influences == 3
