"""Typed configuration and result containers for scDD."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from scdd.core.errors import ConfigurationError

DD_CATEGORIES: tuple[str, ...] = ("DE", "DP", "DM", "DB")
ALL_CATEGORIES: tuple[str, ...] = ("DE", "DP", "DM", "DB", "DZ", "NS")
PARALLEL_CHOICES: tuple[str, ...] = ("Genes", "Permutations")
BACKENDS: tuple[str, ...] = ("loky", "multiprocessing", "threading")


def _readonly(values: np.ndarray, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype).ravel()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class PriorParams:
    """Normal/Inverse-Gamma prior and DP concentration.

    - `alpha`: Dirichlet-process concentration.
    - `mu0`, `s0`: prior mean and precision scaling of component means.
    - `a0`, `b0`: shape and rate of the inverse-gamma on component variances.
    """

    alpha: float = 0.10
    mu0: float = 0.0
    s0: float = 0.01
    a0: float = 0.01
    b0: float = 0.01

    def __post_init__(self) -> None:
        for name in ("alpha", "s0", "a0", "b0"):
            val = float(getattr(self, name))
            if not np.isfinite(val) or val <= 0.0:
                raise ConfigurationError(f"Prior parameter '{name}' must be positive, got {val}.")
        if not np.isfinite(float(self.mu0)):
            raise ConfigurationError("Prior parameter 'mu0' must be finite.")


@dataclass(frozen=True)
class DDConfig:
    """Run configuration for one scDD analysis."""

    permutations: int = 0
    test_zeroes: bool = True
    adjust_perms: bool = False
    parallel_by: str = "Genes"
    min_size: int = 3
    min_nonzero: int | None = None
    condition: str = "condition"
    n_jobs: int = 1
    backend: str = "loky"
    seed: int = 0
    max_components: int = 5

    def __post_init__(self) -> None:
        if int(self.permutations) < 0:
            raise ConfigurationError("permutations must be >= 0.")
        if int(self.min_size) < 1:
            raise ConfigurationError("min_size must be >= 1.")
        if self.min_nonzero is not None and int(self.min_nonzero) < 1:
            raise ConfigurationError("min_nonzero must be >= 1 when provided.")
        if self.parallel_by not in PARALLEL_CHOICES:
            raise ConfigurationError(
                f"parallel_by must be one of {', '.join(PARALLEL_CHOICES)}; got '{self.parallel_by}'."
            )
        if int(self.max_components) < 1:
            raise ConfigurationError("max_components must be >= 1.")
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unsupported parallel backend '{self.backend}'. Use one of: {', '.join(BACKENDS)}."
            )
        if int(self.n_jobs) < 1:
            raise ConfigurationError("n_jobs must be >= 1.")

    @property
    def significance_threshold(self) -> float:
        # The zero test gets the other half of the 0.05 level.
        return 0.025 if self.test_zeroes else 0.05


@dataclass(frozen=True)
class ClusterFit:
    """Restricted mixture partition of one group's log nonzero values.

    - `labels`: dense cluster ids 1..K, aligned with the input values.
    - `n_components`: K, including clusters smaller than `min_size`.
    - `n_valid`: clusters with at least `min_size` members.
    """

    labels: np.ndarray
    n_components: int
    n_valid: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", _readonly(self.labels, np.int64))

    def cluster_sizes(self) -> np.ndarray:
        return np.bincount(self.labels, minlength=self.n_components + 1)[1:]

    def valid_clusters(self, min_size: int) -> np.ndarray:
        sizes = self.cluster_sizes()
        return np.flatnonzero(sizes >= int(min_size)) + 1


@dataclass(frozen=True)
class GeneFit:
    """Pooled and per-condition fits for one gene.

    `values` are the log nonzero expression values, `in_ref` marks those
    that belong to the reference condition and `positions` are their sample
    indices in the full expression row. `bf` and `den` are the alt and
    null log marginal likelihoods, present only when permutations run.
    """

    values: np.ndarray
    in_ref: np.ndarray
    positions: np.ndarray
    combined: ClusterFit
    cond1: ClusterFit
    cond2: ClusterFit
    bf: float | None = None
    den: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _readonly(self.values, float))
        object.__setattr__(self, "in_ref", _readonly(self.in_ref, bool))
        object.__setattr__(self, "positions", _readonly(self.positions, np.int64))
        if not (self.values.size == self.in_ref.size == self.positions.size):
            raise ValueError("values, in_ref and positions must have the same length.")

    @property
    def observed_statistic(self) -> float:
        if self.bf is None or self.den is None:
            return float("nan")
        return float(self.bf - self.den)


@dataclass(frozen=True)
class FilterResult:
    """Indices of testable genes and the reasons others were dropped."""

    tofit: np.ndarray
    too_sparse: np.ndarray
    constant: np.ndarray
    min_nonzero: int

    @property
    def n_excluded(self) -> int:
        return int(self.too_sparse.size + self.constant.size)


@dataclass(frozen=True)
class DDResults:
    """Output of `run_scdd`: the per-gene table and three assignment maps."""

    genes: pd.DataFrame
    zhat_combined: pd.DataFrame
    zhat_c1: pd.DataFrame
    zhat_c2: pd.DataFrame
    config: DDConfig
    prior: PriorParams
    reference: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
