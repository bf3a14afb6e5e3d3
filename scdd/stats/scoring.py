"""Multiple-testing correction and the closed-form tests used around the permutation test."""

from __future__ import annotations

import numpy as np
from scipy.stats import chi2_contingency, fisher_exact, ks_2samp, ttest_ind

from scdd.core.types import GeneFit
from scdd.core.utils import finite_1d


def bh_fdr(pvals: np.ndarray) -> np.ndarray:
    """Benjamini-Hochberg adjustment; NaN entries stay NaN and are not counted."""
    arr = np.asarray(pvals, dtype=float)
    flat = arr.ravel()
    q = np.full_like(flat, np.nan)
    finite = np.isfinite(flat)
    if np.any((flat[finite] < 0.0) | (flat[finite] > 1.0)):
        raise ValueError("p-values must be in [0,1] or NaN.")
    if np.any(finite):
        p = flat[finite]
        m = int(p.size)
        order = np.argsort(p, kind="mergesort")
        ranked = p[order]
        ranks = np.arange(1, m + 1, dtype=float)
        adj = ranked * (float(m) / ranks)
        adj = np.minimum.accumulate(adj[::-1])[::-1]
        adj = np.clip(adj, 0.0, 1.0)
        q_valid = np.empty_like(adj)
        q_valid[order] = adj
        q[finite] = q_valid
    return q.reshape(arr.shape)


def ks_pvalue(values: np.ndarray, in_ref: np.ndarray) -> float:
    """Two-sample Kolmogorov-Smirnov p-value between the two conditions."""
    y = finite_1d("values", values)
    ref = np.asarray(in_ref, dtype=bool).ravel()
    if ref.size != y.size:
        raise ValueError("values and in_ref must have the same length.")
    if ref.all() or not ref.any():
        raise ValueError("Both conditions need at least one value for the KS test.")
    return float(ks_2samp(y[ref], y[~ref]).pvalue)


def contingency_pvalue(table: np.ndarray) -> float:
    """Independence test on a clusters x conditions count table.

    Fisher's exact test for 2x2 tables, Pearson chi-square otherwise. Rows or
    columns without counts are dropped first.
    """
    tab = np.asarray(table, dtype=float)
    tab = tab[tab.sum(axis=1) > 0][:, tab.sum(axis=0) > 0]
    if tab.ndim != 2 or tab.shape[0] < 2 or tab.shape[1] < 2:
        return 1.0
    if tab.shape == (2, 2):
        return float(fisher_exact(tab.astype(int))[1])
    return float(chi2_contingency(tab, correction=False)[1])


def cluster_condition_pvalue(fit: GeneFit, min_size: int) -> float:
    """Dependence between pooled valid-cluster membership and condition."""
    valid = fit.combined.valid_clusters(min_size)
    labels = fit.combined.labels
    table = np.array(
        [[np.sum((labels == k) & fit.in_ref), np.sum((labels == k) & ~fit.in_ref)] for k in valid],
        dtype=float,
    )
    if table.size == 0:
        return 1.0
    return contingency_pvalue(table)


def mean_shift_pvalue(values: np.ndarray, in_ref: np.ndarray) -> float:
    """Welch t-test p-value for a shift in mean between conditions."""
    y = finite_1d("values", values)
    ref = np.asarray(in_ref, dtype=bool).ravel()
    a, b = y[ref], y[~ref]
    if a.size < 2 or b.size < 2:
        return 1.0
    if np.ptp(a) == 0.0 and np.ptp(b) == 0.0:
        return 1.0 if a[0] == b[0] else 0.0
    p = float(ttest_ind(a, b, equal_var=False).pvalue)
    return p if np.isfinite(p) else 1.0
