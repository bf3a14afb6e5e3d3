from __future__ import annotations

import numpy as np
import pytest
from scipy.stats import norm

from scdd.core.clustering import (
    MERGE_SEPARATION,
    _merge_close_components,
    component_summary,
    count_valid_clusters,
    fit_restricted_mixture,
)
from scdd.core.errors import DegenerateInputError
from scdd.core.types import ClusterFit


def _normal_block(n: int, loc: float, scale: float) -> np.ndarray:
    return loc + scale * norm.ppf((np.arange(n) + 0.5) / n)


def test_two_separated_modes_are_found_and_ordered_by_mean():
    high = _normal_block(30, 5.0, 0.2)
    low = _normal_block(30, 1.0, 0.2)
    fit = fit_restricted_mixture(np.concatenate([high, low]), min_size=3)
    assert fit.n_components == 2
    assert fit.n_valid == 2
    assert np.all(fit.labels[:30] == 2)
    assert np.all(fit.labels[30:] == 1)


def test_single_mode_gives_one_component():
    fit = fit_restricted_mixture(_normal_block(60, 2.0, 0.3), min_size=3)
    assert fit.n_components == 1
    assert fit.n_valid == 1
    assert set(np.unique(fit.labels)) == {1}


def test_components_closer_than_two_sds_are_merged():
    assert MERGE_SEPARATION == 2.0
    labels = np.repeat([1, 2], 30)
    close = np.concatenate([_normal_block(30, 0.0, 0.1), _normal_block(30, 0.15, 0.1)])
    assert np.unique(_merge_close_components(close, labels)).size == 1
    apart = np.concatenate([_normal_block(30, 0.0, 0.1), _normal_block(30, 0.4, 0.1)])
    np.testing.assert_array_equal(_merge_close_components(apart, labels), labels)


def test_constant_values_raise_degenerate_input():
    with pytest.raises(DegenerateInputError, match="at least 2 distinct"):
        fit_restricted_mixture(np.full(10, 1.5))


def test_fit_labels_are_read_only():
    fit = fit_restricted_mixture(_normal_block(20, 0.0, 1.0))
    with pytest.raises(ValueError):
        fit.labels[0] = 5


def test_count_valid_clusters_respects_min_size():
    labels = np.array([1, 1, 1, 2, 2, 3, 3, 3, 3])
    assert count_valid_clusters(labels, 3) == 2
    assert count_valid_clusters(labels, 2) == 3
    assert count_valid_clusters(labels, 5) == 0


def test_valid_clusters_are_one_based_ids():
    fit = ClusterFit(labels=np.array([1, 2, 2, 2, 3, 3, 3]), n_components=3, n_valid=2)
    np.testing.assert_array_equal(fit.cluster_sizes(), [1, 3, 3])
    np.testing.assert_array_equal(fit.valid_clusters(3), [2, 3])


def test_component_summary_without_valid_cluster_is_single_component():
    values = np.array([0.0, 1.0, 2.0, 4.0])
    fit = ClusterFit(labels=np.array([1, 2, 3, 4]), n_components=4, n_valid=0)
    means, sds, sizes = component_summary(values, fit, min_size=3)
    np.testing.assert_allclose(means, [values.mean()])
    np.testing.assert_allclose(sds, [values.std()])
    np.testing.assert_array_equal(sizes, [4])


def test_component_summary_skips_small_clusters():
    values = np.array([0.0, 0.1, 0.2, 5.0, 5.1, 5.2, 9.0])
    fit = ClusterFit(labels=np.array([1, 1, 1, 2, 2, 2, 3]), n_components=3, n_valid=2)
    means, _, sizes = component_summary(values, fit, min_size=3)
    np.testing.assert_allclose(means, [0.1, 5.1])
    np.testing.assert_array_equal(sizes, [3, 3])
