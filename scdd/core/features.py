"""Input resolution: expression matrices and condition labels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

from scdd.core.errors import ConfigurationError

NORM_LAYER = "NormCounts"


@dataclass(frozen=True)
class ExpressionInput:
    """Genes x samples expression plus row/column names and sample metadata."""

    matrix: Any
    gene_names: pd.Index
    sample_names: pd.Index
    obs: pd.DataFrame | None = None


def _is_anndata(obj: Any) -> bool:
    return hasattr(obj, "obs") and hasattr(obj, "var_names") and hasattr(obj, "X")


def _anndata_matrix(adata, layer: str | None, logger: logging.Logger):
    layers = getattr(adata, "layers", {})
    if layer is not None:
        if layer not in layers:
            raise ConfigurationError(f"Layer '{layer}' not found in adata.layers.")
        return layers[layer]
    if NORM_LAYER in layers:
        return layers[NORM_LAYER]
    logger.info("Layer '%s' not found; using adata.X as normalized counts.", NORM_LAYER)
    return adata.X


def resolve_expression(
    data: Any,
    *,
    layer: str | None = None,
    logger: logging.Logger | None = None,
) -> ExpressionInput:
    """Normalize supported inputs to a genes x samples matrix.

    AnnData objects are cells x genes and get transposed; DataFrames and arrays
    are taken as genes x samples. Sparse input stays sparse (CSR).
    """
    log = logger or logging.getLogger("scdd")
    if _is_anndata(data):
        mat = _anndata_matrix(data, layer, log)
        mat = sp.csr_matrix(mat.T) if sp.issparse(mat) else np.asarray(mat, dtype=float).T
        out = ExpressionInput(
            matrix=mat,
            gene_names=pd.Index(data.var_names).astype(str),
            sample_names=pd.Index(data.obs_names).astype(str),
            obs=data.obs,
        )
    elif isinstance(data, pd.DataFrame):
        out = ExpressionInput(
            matrix=data.to_numpy(dtype=float),
            gene_names=pd.Index(data.index).astype(str),
            sample_names=pd.Index(data.columns).astype(str),
        )
    elif sp.issparse(data):
        mat = sp.csr_matrix(data, dtype=float)
        out = ExpressionInput(
            matrix=mat,
            gene_names=pd.Index([f"gene{i + 1}" for i in range(mat.shape[0])]),
            sample_names=pd.Index([f"sample{j + 1}" for j in range(mat.shape[1])]),
        )
    else:
        mat = np.asarray(data, dtype=float)
        if mat.ndim != 2:
            raise ConfigurationError(f"Expression matrix must be 2D, got shape {mat.shape}.")
        out = ExpressionInput(
            matrix=mat,
            gene_names=pd.Index([f"gene{i + 1}" for i in range(mat.shape[0])]),
            sample_names=pd.Index([f"sample{j + 1}" for j in range(mat.shape[1])]),
        )

    _check_values(out.matrix)
    return out


def _check_values(matrix) -> None:
    vals = matrix.data if sp.issparse(matrix) else np.asarray(matrix)
    if vals.size and not np.isfinite(vals).all():
        raise ConfigurationError("Expression matrix contains NaN/inf values.")
    if vals.size and float(np.min(vals)) < 0.0:
        raise ConfigurationError(
            "Negative values for normalized expression detected. "
            "Please ensure all counts are non-negative."
        )


def resolve_condition(
    condition: Any,
    n_samples: int,
    *,
    obs: pd.DataFrame | None = None,
) -> tuple[np.ndarray, Any]:
    """Return `(in_ref, reference)` for a two-level condition.

    `condition` is either a column name in `obs` or a per-sample sequence. The
    reference level is the first value encountered.
    """
    if isinstance(condition, str):
        if obs is None:
            raise ConfigurationError(
                f"Condition column '{condition}' given but no sample metadata available."
            )
        if condition not in obs.columns:
            raise ConfigurationError(f"Condition column '{condition}' not found in sample metadata.")
        labels = np.asarray(obs[condition])
    else:
        labels = np.asarray(condition).ravel()

    if labels.size != int(n_samples):
        raise ConfigurationError(
            f"Condition labels have length {labels.size} but expression has {n_samples} samples."
        )
    levels = pd.unique(pd.Series(labels, dtype=object))
    if levels.size != 2:
        raise ConfigurationError(
            f"Condition must have exactly two distinct values; found {levels.size}."
        )
    reference = levels[0]
    in_ref = np.asarray(pd.Series(labels, dtype=object) == reference, dtype=bool)
    return in_ref, reference
