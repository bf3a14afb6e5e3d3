"""Test for a difference in the proportion of zeroes (dropout rate)."""

from __future__ import annotations

import numpy as np

from scdd.core.utils import dense_row
from scdd.stats.scoring import contingency_pvalue


def zero_pvalue(expr: np.ndarray, in_ref: np.ndarray) -> float:
    """Fisher exact test of zero / nonzero counts by condition for one gene."""
    x = np.asarray(expr, dtype=float).ravel()
    ref = np.asarray(in_ref, dtype=bool).ravel()
    if ref.size != x.size:
        raise ValueError("expr and in_ref must have the same length.")
    nz = x > 0.0
    table = np.array(
        [
            [np.sum(~nz & ref), np.sum(~nz & ~ref)],
            [np.sum(nz & ref), np.sum(nz & ~ref)],
        ],
        dtype=float,
    )
    return contingency_pvalue(table)


def zero_pvalues(matrix, in_ref: np.ndarray, genes: np.ndarray) -> np.ndarray:
    """Zero-proportion p-values for the gene rows listed in `genes`."""
    idx = np.asarray(genes, dtype=int).ravel()
    return np.array([zero_pvalue(dense_row(matrix, g), in_ref) for g in idx], dtype=float)
