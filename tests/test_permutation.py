from __future__ import annotations

import logging

import numpy as np
import pytest

from scdd.core.errors import ConfigurationError, PermutationDegeneracy
from scdd.core.types import PriorParams
from scdd.pipeline import fit_gene
from scdd.simulate import simulate_gene
from scdd.stats.permutation import (
    GeneParallel,
    PermutationParallel,
    PermutationSettings,
    PermutationStrategy,
    PermutationTask,
    build_task,
    detection_residuals,
    empirical_pvalue,
    make_strategy,
    replicate_range,
    replicate_statistic,
    split_replicates,
)


def _tasks(seed: int = 0, adjust: bool = False):
    rng = np.random.default_rng(seed)
    in_ref = np.repeat([True, False], 20)
    prior = PriorParams()
    tasks = []
    fits = []
    for g, pattern in enumerate(["DM", "null"]):
        expr = simulate_gene(pattern, 20, rng)
        fit = fit_gene(expr, in_ref, prior=prior)
        detection = rng.uniform(0.2, 0.8, size=in_ref.size) if adjust else None
        tasks.append(build_task(g, fit, detection))
        fits.append(fit)
    return tasks, fits


def _degenerate_task() -> PermutationTask:
    # Whichever group lacks the 2.0 is left with two equal values.
    return PermutationTask(
        gene_index=0,
        values=np.array([1.0, 1.0, 1.0, 2.0]),
        in_ref=np.array([True, True, False, False]),
        den=0.0,
    )


def test_split_replicates_covers_range_contiguously():
    chunks = split_replicates(10, 3)
    assert chunks[0][0] == 0
    assert chunks[-1][1] == 10
    for (_, stop), (start, _) in zip(chunks[:-1], chunks[1:]):
        assert stop == start
    assert split_replicates(2, 8) == [(0, 1), (1, 2)]


def test_strategies_produce_identical_nulls():
    tasks, _ = _tasks()
    settings = PermutationSettings(prior=PriorParams(), seed=11)
    by_gene = GeneParallel().null_distributions(tasks, 8, settings)
    by_perm = PermutationParallel(n_jobs=2, backend="threading").null_distributions(tasks, 8, settings)
    assert len(by_gene) == len(by_perm) == 2
    for a, b in zip(by_gene, by_perm):
        assert a.shape == (8,)
        np.testing.assert_array_equal(a, b)


def test_null_is_reproducible_for_fixed_seed():
    tasks, _ = _tasks()
    settings = PermutationSettings(prior=PriorParams(), seed=3)
    first = GeneParallel().null_distributions(tasks, 6, settings)
    second = GeneParallel(n_jobs=2, backend="threading").null_distributions(tasks, 6, settings)
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_adjusted_replicates_are_finite_and_match_across_strategies():
    tasks, _ = _tasks(adjust=True)
    settings = PermutationSettings(prior=PriorParams(), seed=5, adjust=True)
    by_gene = GeneParallel().null_distributions(tasks, 5, settings)
    by_perm = PermutationParallel(n_jobs=2, backend="threading").null_distributions(tasks, 5, settings)
    for a, b in zip(by_gene, by_perm):
        assert np.isfinite(a).all()
        np.testing.assert_array_equal(a, b)


def test_degenerate_replicate_raises_inside_engine():
    settings = PermutationSettings(prior=PriorParams())
    with pytest.raises(PermutationDegeneracy, match="degenerate"):
        replicate_statistic(_degenerate_task(), settings, 0)


def test_degenerate_replicates_become_nan_and_pvalue_warns():
    settings = PermutationSettings(prior=PriorParams())
    null = replicate_range(_degenerate_task(), settings, 0, 4)
    assert null.shape == (4,)
    assert np.isnan(null).all()
    with pytest.warns(RuntimeWarning, match="No valid permutation replicates"):
        assert np.isnan(empirical_pvalue(null, 0.0))


def test_empirical_pvalue_ignores_missing_replicates():
    p = empirical_pvalue(np.array([1.0, 2.0, 3.0, np.nan]), 1.5)
    assert p == pytest.approx(2.0 / 3.0)
    assert empirical_pvalue(np.array([1.0, 2.0]), 5.0) == 0.0


def test_detection_residuals_reconstruct_values():
    values = np.array([1.0, 2.0, 2.5, 4.0, 3.5])
    detection = np.array([0.1, 0.3, 0.4, 0.7, 0.6])
    fitted, resid = detection_residuals(values, detection)
    np.testing.assert_allclose(fitted + resid, values)
    np.testing.assert_allclose(np.sum(resid), 0.0, atol=1e-10)
    np.testing.assert_allclose(np.dot(resid, detection), 0.0, atol=1e-10)


def test_build_task_requires_scored_fit():
    in_ref = np.repeat([True, False], 10)
    expr = simulate_gene("null", 10, np.random.default_rng(1))
    fit = fit_gene(expr, in_ref, prior=PriorParams(), score=False)
    with pytest.raises(ValueError, match="no pooled score"):
        build_task(0, fit)


def test_strategy_base_cannot_be_instantiated():
    with pytest.raises(TypeError):
        PermutationStrategy()
    assert isinstance(GeneParallel(), PermutationStrategy)


def test_make_strategy_rejects_unknown_mode():
    assert isinstance(make_strategy("Genes"), GeneParallel)
    assert isinstance(make_strategy("Permutations", n_jobs=2), PermutationParallel)
    with pytest.raises(ConfigurationError, match="'Permutations' or 'Genes'"):
        make_strategy("Cells")


def test_permutation_parallel_logs_progress(monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    monkeypatch.setattr("scdd.stats.permutation.PROGRESS_EVERY", 1)
    tasks, _ = _tasks()
    settings = PermutationSettings(prior=PriorParams())
    PermutationParallel().null_distributions(tasks[:1], 2, settings, logger=logging.getLogger("test"))
    assert "1 genes completed" in caplog.text
