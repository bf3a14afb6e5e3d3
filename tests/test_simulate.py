from __future__ import annotations

import numpy as np
import pytest

from scdd.simulate import PATTERNS, simulate_dataset, simulate_gene


def test_dataset_shape_and_labels():
    frame, condition = simulate_dataset({p: 2 for p in PATTERNS}, 15, seed=0)
    assert frame.shape == (2 * len(PATTERNS), 30)
    assert list(frame.index[:2]) == ["null_1", "null_2"]
    assert list(condition[:15]) == ["c1"] * 15
    assert list(condition[15:]) == ["c2"] * 15
    assert (frame.to_numpy() >= 0.0).all()


def test_dz_zero_proportions_are_exact():
    x = simulate_gene("DZ", 100, np.random.default_rng(0))
    assert np.sum(x[:100] == 0.0) == 0
    assert np.sum(x[100:] == 0.0) == 50


def test_zero_proportion_per_condition():
    x = simulate_gene("DE", 50, np.random.default_rng(0), zero_c1=0.2, zero_c2=0.4)
    assert np.sum(x[:50] == 0.0) == 10
    assert np.sum(x[50:] == 0.0) == 20


def test_seed_reproducibility():
    a, _ = simulate_dataset({"DM": 1}, 10, seed=9)
    b, _ = simulate_dataset({"DM": 1}, 10, seed=9)
    np.testing.assert_array_equal(a.to_numpy(), b.to_numpy())


def test_unknown_pattern_raises():
    with pytest.raises(ValueError, match="Unknown pattern"):
        simulate_gene("DX", 10, np.random.default_rng(0))
