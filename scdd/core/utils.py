"""Small pure helpers for core computations."""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp


def finite_1d(name: str, values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size == 0:
        raise ValueError(f"{name} must be non-empty.")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} must be finite.")
    return arr


def dense_row(matrix, idx: int) -> np.ndarray:
    """Return row `idx` of a dense or sparse genes x samples matrix as floats."""
    row = matrix[int(idx)]
    if sp.issparse(row):
        return row.toarray().ravel().astype(float)
    return np.asarray(row).ravel().astype(float)


def nonzero_counts(matrix, columns: np.ndarray) -> np.ndarray:
    """Per-gene count of nonzero entries restricted to boolean `columns`."""
    sub = matrix[:, np.asarray(columns, dtype=bool)]
    if sp.issparse(sub):
        return np.asarray((sub > 0).sum(axis=1)).ravel().astype(int)
    return np.asarray(sub > 0).sum(axis=1).astype(int)


def detection_rate(matrix) -> np.ndarray:
    """Per-sample proportion of genes with nonzero expression."""
    n_genes = int(matrix.shape[0])
    if n_genes == 0:
        raise ValueError("Detection rate needs at least one gene.")
    if sp.issparse(matrix):
        counts = np.asarray((matrix > 0).sum(axis=0)).ravel()
    else:
        counts = np.asarray(matrix > 0).sum(axis=0)
    return counts.astype(float) / float(n_genes)


def log_nonzero(
    expr: np.ndarray, in_ref: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split one gene into log nonzero values, their reference mask and positions."""
    x = finite_1d("expr", expr)
    ref = np.asarray(in_ref, dtype=bool).ravel()
    if ref.size != x.size:
        raise ValueError("expr and condition mask must have the same length.")
    keep = np.flatnonzero(x > 0.0)
    return np.log(x[keep]), ref[keep], keep
