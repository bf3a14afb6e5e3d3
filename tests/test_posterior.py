from __future__ import annotations

import numpy as np
import pytest
from scipy.special import gammaln
from scipy.stats import t as student_t

from scdd.core.errors import ConfigurationError
from scdd.core.types import ClusterFit, PriorParams
from scdd.stats.posterior import (
    bayes_factor_terms,
    cluster_log_marginal,
    log_marginal_likelihood,
    score_fit,
)


def test_single_observation_marginal_is_student_t():
    prior = PriorParams(alpha=1.0, mu0=1.0, s0=0.5, a0=2.0, b0=1.0)
    y = 1.7
    scale = np.sqrt(prior.b0 * (1.0 + 1.0 / prior.s0) / prior.a0)
    expected = student_t.logpdf(y, df=2.0 * prior.a0, loc=prior.mu0, scale=scale)
    np.testing.assert_allclose(cluster_log_marginal(np.array([y]), prior), expected, rtol=1e-10)


def test_one_cluster_partition_adds_ewens_prior():
    prior = PriorParams()
    y = np.array([0.3, 0.5, 0.4, 0.9, 0.1])
    n = y.size
    partition = np.log(prior.alpha) + gammaln(n) + gammaln(prior.alpha) - gammaln(prior.alpha + n)
    expected = partition + cluster_log_marginal(y, prior)
    got = log_marginal_likelihood(y, np.ones(n, dtype=int), prior)
    np.testing.assert_allclose(got, expected, rtol=1e-12)


def test_label_names_do_not_change_score():
    prior = PriorParams()
    y = np.array([0.0, 0.1, 0.2, 3.0, 3.1, 3.2])
    a = log_marginal_likelihood(y, np.array([1, 1, 1, 2, 2, 2]), prior)
    b = log_marginal_likelihood(y, np.array([7, 7, 7, 4, 4, 4]), prior)
    assert a == pytest.approx(b)


def test_separated_groups_prefer_two_clusters():
    prior = PriorParams()
    y = np.array([0.0, 0.1, 0.2, 0.15, 3.0, 3.1, 3.2, 3.05])
    one = log_marginal_likelihood(y, np.ones(y.size, dtype=int), prior)
    two = log_marginal_likelihood(y, np.repeat([1, 2], 4), prior)
    assert two > one


def test_label_length_mismatch_raises():
    with pytest.raises(ValueError, match="same length"):
        log_marginal_likelihood(np.array([1.0, 2.0]), np.array([1]), PriorParams())


def test_bayes_factor_terms_split_by_condition():
    prior = PriorParams()
    y = np.array([0.0, 0.2, 0.1, 3.0, 3.2, 3.1])
    ref = np.array([True, True, True, False, False, False])
    combined = ClusterFit(labels=np.array([1, 1, 1, 2, 2, 2]), n_components=2, n_valid=2)
    c1 = ClusterFit(labels=np.ones(3, dtype=int), n_components=1, n_valid=1)
    c2 = ClusterFit(labels=np.ones(3, dtype=int), n_components=1, n_valid=1)
    bf, den = bayes_factor_terms(y, ref, combined, c1, c2, prior)
    assert bf == pytest.approx(score_fit(y[:3], c1, prior) + score_fit(y[3:], c2, prior))
    assert den == pytest.approx(score_fit(y, combined, prior))


@pytest.mark.parametrize("field", ["alpha", "s0", "a0", "b0"])
def test_prior_rejects_nonpositive_scales(field):
    with pytest.raises(ConfigurationError, match=field):
        PriorParams(**{field: 0.0})
