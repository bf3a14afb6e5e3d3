"""Log marginal likelihood of a partition under the conjugate NIG prior."""

from __future__ import annotations

import numpy as np
from scipy.special import gammaln

from scdd.core.types import ClusterFit, PriorParams
from scdd.core.utils import finite_1d

LOG_2PI = float(np.log(2.0 * np.pi))


def _partition_log_prior(sizes: np.ndarray, alpha: float) -> float:
    n = float(np.sum(sizes))
    k = float(sizes.size)
    return float(
        k * np.log(alpha) + np.sum(gammaln(sizes)) + gammaln(alpha) - gammaln(alpha + n)
    )


def cluster_log_marginal(values: np.ndarray, prior: PriorParams) -> float:
    """Marginal likelihood of one cluster with mean and variance integrated out.

    mean | var ~ N(mu0, var / s0), var ~ InvGamma(a0, b0).
    """
    y = np.asarray(values, dtype=float).ravel()
    n = float(y.size)
    ybar = float(y.mean())
    ss = float(np.sum((y - ybar) ** 2))
    s_n = prior.s0 + n
    a_n = prior.a0 + n / 2.0
    b_n = prior.b0 + 0.5 * ss + prior.s0 * n * (ybar - prior.mu0) ** 2 / (2.0 * s_n)
    return float(
        gammaln(a_n)
        - gammaln(prior.a0)
        + prior.a0 * np.log(prior.b0)
        - a_n * np.log(b_n)
        + 0.5 * (np.log(prior.s0) - np.log(s_n))
        - 0.5 * n * LOG_2PI
    )


def log_marginal_likelihood(
    values: np.ndarray, labels: np.ndarray, prior: PriorParams
) -> float:
    """DP partition prior plus per-cluster conjugate marginals, in log space."""
    y = finite_1d("values", values)
    z = np.asarray(labels).ravel()
    if z.size != y.size:
        raise ValueError("values and labels must have the same length.")
    ids, sizes = np.unique(z, return_counts=True)
    total = _partition_log_prior(sizes.astype(float), prior.alpha)
    for k in ids:
        total += cluster_log_marginal(y[z == k], prior)
    return float(total)


def score_fit(values: np.ndarray, fit: ClusterFit, prior: PriorParams) -> float:
    return log_marginal_likelihood(values, fit.labels, prior)


def bayes_factor_terms(
    values: np.ndarray,
    in_ref: np.ndarray,
    combined: ClusterFit,
    cond1: ClusterFit,
    cond2: ClusterFit,
    prior: PriorParams,
) -> tuple[float, float]:
    """Return `(bf, den)`: within-condition and pooled log marginal likelihoods."""
    y = np.asarray(values, dtype=float).ravel()
    ref = np.asarray(in_ref, dtype=bool).ravel()
    bf = score_fit(y[ref], cond1, prior) + score_fit(y[~ref], cond2, prior)
    den = score_fit(y, combined, prior)
    return float(bf), float(den)
