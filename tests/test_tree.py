import numpy as np
import pytest

from randomcut.exceptions import InvalidArgumentError, InvalidModelStateError
from randomcut.rcf.tree import RandomCutTree, RandomCutTreeNode, _random_cut


def collect(node: RandomCutTreeNode):
    """ Walk a subtree, checking every box and mass against the leaves below it """
    if node.is_leaf:
        points, counts = node.points, node.counts
        assert counts.min() > 0
    else:
        assert len(node.children) == 2
        lower_points, lower_counts = collect(node.children[0])
        upper_points, upper_counts = collect(node.children[1])
        assert np.all(lower_points[:, node.idx_feature] < node.split_threshold)
        assert np.all(upper_points[:, node.idx_feature] >= node.split_threshold)
        points = np.vstack([lower_points, upper_points])
        counts = np.concatenate([lower_counts, upper_counts])
    np.testing.assert_array_equal(node.box_min, points.min(axis=0))
    np.testing.assert_array_equal(node.box_max, points.max(axis=0))
    assert node.mass == counts.sum()
    return points, counts


def test_random_cut_stays_inside_box():
    rng = np.random.default_rng(0)
    box_min = np.array([0.0, 5.0, 1.0])
    box_max = np.array([1.0, 5.0, 3.0])
    for _ in range(200):
        idx_feature, threshold = _random_cut(box_min, box_max, rng)
        assert idx_feature != 1  # zero range feature is never cut
        assert box_min[idx_feature] < threshold <= box_max[idx_feature]


def test_random_cut_without_range_raises():
    with pytest.raises(InvalidModelStateError):
        _random_cut(np.ones(2), np.ones(2), np.random.default_rng(0))


def test_fit_samples_without_replacement(rcf_train_rows):
    tree = RandomCutTree(sample_size=100, rng=np.random.default_rng(1)).fit(rcf_train_rows)
    assert tree.mass == 100
    points, counts = collect(tree.root)
    assert counts.sum() == 100
    # duplicates are collapsed into reference counts
    assert len(np.unique(points, axis=0)) == len(points)


def test_fit_caps_sample_to_available_points():
    Xs = np.random.default_rng(2).normal(size=(20, 3))
    tree = RandomCutTree(sample_size=256, rng=np.random.default_rng(2)).fit(Xs)
    assert tree.mass == 20


def test_identical_points_make_a_single_leaf():
    Xs = np.ones((5, 2))
    tree = RandomCutTree(sample_size=10, rng=np.random.default_rng(3)).fit(Xs)
    assert tree.root.is_leaf
    np.testing.assert_allclose(tree.scores(np.array([[1.0, 1.0], [2.0, 2.0]])), [0.0, 1.0])


def test_nan_points_cannot_be_separated():
    Xs = np.array([[np.nan], [1.0]])
    with pytest.raises(InvalidModelStateError):
        RandomCutTree(sample_size=10, rng=np.random.default_rng(4)).fit(Xs)


def test_infinite_points_cannot_be_separated():
    Xs = np.array([[0.0, 0.0], [1.0, 1.0], [np.inf, 0.0]])
    with pytest.raises(InvalidModelStateError, match="finite"):
        RandomCutTree(sample_size=10, rng=np.random.default_rng(4)).fit(Xs)


def test_empty_batch_raises():
    with pytest.raises(InvalidArgumentError):
        RandomCutTree(rng=np.random.default_rng(0)).fit(np.empty((0, 2)))


def test_invalid_tree_settings():
    with pytest.raises(InvalidArgumentError, match="sample size should be positive"):
        RandomCutTree(sample_size=0)
    with pytest.raises(InvalidArgumentError, match="max depth should be positive"):
        RandomCutTree(max_depth=0)


def test_max_depth_bounds_tree():
    Xs = np.random.default_rng(5).normal(size=(200, 2))
    tree = RandomCutTree(sample_size=200, max_depth=3, rng=np.random.default_rng(5)).fit(Xs)
    assert tree.root.max_depth() <= 3
    assert np.all(tree.depths(Xs) <= 3)
    _, counts = collect(tree.root)
    assert counts.sum() == 200


def test_duplicated_points_score_zero_and_outliers_score_high(rcf_train_rows):
    tree = RandomCutTree(sample_size=100, rng=np.random.default_rng(6)).fit(rcf_train_rows)
    points, counts = tree.leaf_points()
    assert np.any(counts > 1)
    np.testing.assert_allclose(tree.scores(points[counts > 1]), 0.0, atol=1e-12)
    assert tree.scores(np.array([[500.0]]))[0] > 0.9


def test_scores_are_normalized():
    rng = np.random.default_rng(7)
    Xs = rng.normal(size=(300, 2))
    tree = RandomCutTree(sample_size=128, rng=rng).fit(Xs)
    queries = rng.normal(scale=3.0, size=(50, 2))
    scores = tree.scores(queries)
    assert np.all(scores >= 0.0)
    assert np.all(scores <= 1.0 + 1e-12)


def test_farther_points_score_higher():
    rng = np.random.default_rng(8)
    Xs = rng.normal(size=(256, 2))
    tree = RandomCutTree(sample_size=256, rng=rng).fit(Xs)
    near, far = tree.scores(np.array([[0.05, 0.05], [25.0, 25.0]]))
    assert far > near


def test_insert_and_delete_keep_boxes_consistent():
    rng = np.random.default_rng(9)
    tree = RandomCutTree(sample_size=64, rng=rng)
    Xs = rng.normal(size=(40, 2))
    for x in Xs:
        tree.insert(x)
    assert tree.mass == 40
    points, _ = collect(tree.root)
    assert len(points) == 40
    # every inserted point is reachable through the cuts
    assert all(tree.contains(x) for x in Xs)

    for x in Xs[:25]:
        tree.delete(x)
    assert tree.mass == 15
    points, _ = collect(tree.root)
    np.testing.assert_array_equal(tree.root.box_min, Xs[25:].min(axis=0))
    np.testing.assert_array_equal(tree.root.box_max, Xs[25:].max(axis=0))
    assert all(tree.contains(x) for x in Xs[25:])
    assert not any(tree.contains(x) for x in Xs[:25])

    for x in Xs[25:]:
        tree.delete(x)
    assert tree.root is None
    assert tree.mass == 0


def test_insert_duplicate_raises_reference_count():
    tree = RandomCutTree(sample_size=10, rng=np.random.default_rng(10))
    tree.insert([1.0, 2.0])
    tree.insert([3.0, 4.0])
    tree.insert([1.0, 2.0])
    points, counts = tree.leaf_points()
    assert len(points) == 2
    assert counts.sum() == 3

    tree.delete([1.0, 2.0])
    _, counts = tree.leaf_points()
    assert sorted(counts.tolist()) == [1, 1]


def test_insert_into_fitted_tree():
    rng = np.random.default_rng(11)
    Xs = rng.normal(size=(30, 3))
    tree = RandomCutTree(sample_size=40, rng=rng).fit(Xs)
    outlier = np.array([50.0, 50.0, 50.0])
    assert tree.scores(outlier.reshape(1, -1))[0] > 0.5
    tree.insert(outlier)
    assert tree.mass == 31
    collect(tree.root)
    assert tree.contains(outlier)
    # a lone point is still scored against the subtree it was cut from
    assert tree.scores(outlier.reshape(1, -1))[0] > 0.0


def test_insert_respects_max_depth():
    rng = np.random.default_rng(12)
    tree = RandomCutTree(sample_size=100, max_depth=2, rng=rng)
    for x in rng.normal(size=(50, 2)):
        tree.insert(x)
    collect(tree.root)
    assert tree.mass == 50


def test_insert_into_full_tree_raises():
    tree = RandomCutTree(sample_size=2, rng=np.random.default_rng(13))
    tree.insert([0.0])
    tree.insert([1.0])
    with pytest.raises(InvalidModelStateError):
        tree.insert([2.0])


def test_insert_wrong_dimension_raises():
    tree = RandomCutTree(sample_size=5, rng=np.random.default_rng(14))
    tree.insert([0.0, 1.0])
    with pytest.raises(InvalidArgumentError):
        tree.insert([0.0, 1.0, 2.0])


def test_delete_missing_point_leaves_tree_untouched():
    rng = np.random.default_rng(15)
    Xs = rng.normal(size=(20, 2))
    tree = RandomCutTree(sample_size=20, rng=rng).fit(Xs)
    with pytest.raises(InvalidArgumentError):
        tree.delete([100.0, 100.0])
    assert tree.mass == 20
    collect(tree.root)

    with pytest.raises(InvalidArgumentError):
        RandomCutTree().delete([0.0])


def test_lone_point_is_scored_against_its_sibling():
    tree = RandomCutTree(sample_size=10, rng=np.random.default_rng(18))
    for x in ([0.0], [0.0], [0.0], [10.0]):
        tree.insert(x)
    # the single 10.0 sits next to the three 0.0 duplicates
    np.testing.assert_allclose(tree.scores(np.array([[0.0], [10.0]])), [0.0, 0.75])
    assert not tree.contains([5.0])
    assert not RandomCutTree().contains([0.0])


def test_unfitted_tree_cannot_score():
    with pytest.raises(InvalidModelStateError):
        RandomCutTree().scores(np.zeros((1, 1)))


def test_state_round_trip():
    rng = np.random.default_rng(16)
    Xs = rng.normal(size=(100, 2))
    tree = RandomCutTree(sample_size=64, max_depth=10, rng=rng).fit(Xs)
    restored = RandomCutTree.from_state(tree.to_state())
    assert restored.sample_size == 64
    assert restored.max_depth == 10
    collect(restored.root)
    queries = rng.normal(scale=2.0, size=(20, 2))
    np.testing.assert_array_equal(tree.scores(queries), restored.scores(queries))


def test_plot_partition_space_2D(no_show):
    rng = np.random.default_rng(17)
    tree = RandomCutTree(sample_size=32, rng=rng).fit(rng.normal(size=(32, 2)))
    tree.plot_partition_space_2D()
