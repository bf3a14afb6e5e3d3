"""Restricted univariate normal mixture fitting on log nonzero expression."""

from __future__ import annotations

import warnings

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

from scdd.core.errors import DegenerateInputError
from scdd.core.types import ClusterFit
from scdd.core.utils import finite_1d

# Two equal-weight normals closer than two pooled SDs have a single mode.
MERGE_SEPARATION = 2.0
DEFAULT_RANDOM_STATE = 0


def _bic_mixture_labels(
    values: np.ndarray, max_components: int, random_state: int
) -> np.ndarray:
    x = values.reshape(-1, 1)
    g_max = max(1, min(int(max_components), int(np.unique(values).size)))
    best_labels: np.ndarray | None = None
    best_bic = np.inf
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        for g in range(1, g_max + 1):
            gm = GaussianMixture(
                n_components=g,
                covariance_type="full",
                n_init=1,
                random_state=int(random_state),
            )
            gm.fit(x)
            bic = float(gm.bic(x))
            if bic < best_bic:
                best_bic = bic
                best_labels = gm.predict(x)
    if best_labels is None:
        raise DegenerateInputError("No mixture model could be fit.")
    return best_labels


def _cluster_moments(values: np.ndarray, labels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    ids = np.unique(labels)
    means = np.array([values[labels == k].mean() for k in ids], dtype=float)
    variances = np.array([values[labels == k].var() for k in ids], dtype=float)
    return ids, means, variances


def _merge_close_components(values: np.ndarray, labels: np.ndarray) -> np.ndarray:
    out = labels.copy()
    while np.unique(out).size > 1:
        ids, means, variances = _cluster_moments(values, out)
        order = np.argsort(means, kind="mergesort")
        ids, means, variances = ids[order], means[order], variances[order]
        gaps = np.diff(means)
        pooled_sd = np.sqrt((variances[:-1] + variances[1:]) / 2.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            sep = np.where(pooled_sd > 0.0, gaps / pooled_sd, np.where(gaps > 0.0, np.inf, 0.0))
        j = int(np.argmin(sep))
        if sep[j] >= MERGE_SEPARATION:
            break
        out[out == ids[j + 1]] = ids[j]
    return out


def _relabel_by_mean(values: np.ndarray, labels: np.ndarray) -> np.ndarray:
    ids, means, _ = _cluster_moments(values, labels)
    order = ids[np.argsort(means, kind="mergesort")]
    mapping = {int(old): new for new, old in enumerate(order, start=1)}
    return np.array([mapping[int(k)] for k in labels], dtype=np.int64)


def count_valid_clusters(labels: np.ndarray, min_size: int) -> int:
    """Number of clusters with at least `min_size` members."""
    _, counts = np.unique(np.asarray(labels), return_counts=True)
    return int(np.sum(counts >= int(min_size)))


def fit_restricted_mixture(
    values: np.ndarray,
    *,
    min_size: int = 3,
    max_components: int = 5,
    random_state: int = DEFAULT_RANDOM_STATE,
) -> ClusterFit:
    """Partition log nonzero values into normal components.

    The BIC-optimal Gaussian mixture over 1..`max_components` components is
    fitted, adjacent components that do not form separate modes are merged,
    and labels are renumbered 1..K in ascending mean order. Clusters smaller
    than `min_size` keep their labels but are left out of `n_valid`.

    Raises:
        DegenerateInputError: If fewer than two distinct values are given.
    """
    y = finite_1d("values", values)
    if np.unique(y).size < 2:
        raise DegenerateInputError(
            f"Mixture fitting needs at least 2 distinct values; got {np.unique(y).size}."
        )
    raw = _bic_mixture_labels(y, max_components, random_state)
    merged = _merge_close_components(y, raw)
    labels = _relabel_by_mean(y, merged)
    return ClusterFit(
        labels=labels,
        n_components=int(labels.max()),
        n_valid=count_valid_clusters(labels, min_size),
    )


def component_summary(
    values: np.ndarray, fit: ClusterFit, min_size: int
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Means, SDs and sizes of the valid clusters of `fit`.

    A group without any valid cluster is summarized as a single component.
    """
    y = np.asarray(values, dtype=float).ravel()
    valid = fit.valid_clusters(min_size)
    if valid.size == 0:
        return np.array([y.mean()]), np.array([y.std()]), np.array([y.size])
    means = np.array([y[fit.labels == k].mean() for k in valid], dtype=float)
    sds = np.array([y[fit.labels == k].std() for k in valid], dtype=float)
    sizes = np.array([int(np.sum(fit.labels == k)) for k in valid], dtype=int)
    return means, sds, sizes
