"""Selection of genes that can support mixture fitting in both conditions."""

from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp

from scdd.core.types import FilterResult
from scdd.core.utils import dense_row, nonzero_counts


def _constant_nonzero(values: np.ndarray) -> bool:
    nz = values[values > 0.0]
    return bool(np.unique(nz).size <= 1)


def filter_genes(
    matrix,
    in_ref: np.ndarray,
    *,
    min_size: int,
    min_nonzero: int | None = None,
    test_zeroes: bool = True,
    logger: logging.Logger | None = None,
) -> FilterResult:
    """Return indices of genes with enough distinct nonzero values per condition.

    A gene is dropped when either condition has fewer than
    `max(min_size, 2, min_nonzero)` nonzero values, or when the nonzero values
    within either condition are all identical. Dropped genes are reported, not
    raised on.
    """
    log = logger or logging.getLogger("scdd")
    ref = np.asarray(in_ref, dtype=bool).ravel()
    if ref.size != int(matrix.shape[1]):
        raise ValueError("Condition mask length must equal the number of samples.")

    floor = int(min_size) if min_nonzero is None else int(min_nonzero)
    threshold = max(int(min_size), 2, floor)
    n1 = nonzero_counts(matrix, ref)
    n2 = nonzero_counts(matrix, ~ref)
    enough = (n1 >= threshold) & (n2 >= threshold)
    too_sparse = np.flatnonzero(~enough)

    action = "Only testing for DZ for these genes." if test_zeroes else "Skipping these genes."
    if too_sparse.size > 0:
        log.info(
            "Notice: %d genes have less than %d nonzero cells per condition. %s",
            too_sparse.size,
            floor,
            action,
        )

    mat = sp.csr_matrix(matrix) if sp.issparse(matrix) else matrix
    constant: list[int] = []
    keep: list[int] = []
    for g in np.flatnonzero(enough):
        row = dense_row(mat, int(g))
        if _constant_nonzero(row[ref]) or _constant_nonzero(row[~ref]):
            constant.append(int(g))
        else:
            keep.append(int(g))
    if constant:
        log.info("Notice: %d genes have constant nonzero values. %s", len(constant), action)

    return FilterResult(
        tofit=np.asarray(keep, dtype=int),
        too_sparse=too_sparse.astype(int),
        constant=np.asarray(constant, dtype=int),
        min_nonzero=threshold,
    )
