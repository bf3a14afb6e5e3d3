"""Permutation null distributions for the Bayes-factor independence statistic.

For each gene the observed statistic is `bf - den`, the log marginal
likelihood of the within-condition partitions minus that of the pooled
partition. Replicates either shuffle the condition tags over the gene's
nonzero samples and refit both condition groups (the pooled partition is
kept), or, with detection-rate adjustment, permute residuals of a linear fit
on the per-sample detection rate and refit all three groups.

Two strategies distribute the work: `GeneParallel` hands whole genes to
workers, `PermutationParallel` walks genes one at a time and splits each
gene's replicates across workers. Every replicate seeds its own generator
from `(seed, gene_index, replicate)`, so both strategies produce identical
null arrays.
"""

from __future__ import annotations

import logging
import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial

import numpy as np

from scdd.core.clustering import fit_restricted_mixture
from scdd.core.errors import ConfigurationError, DegenerateInputError, PermutationDegeneracy
from scdd.core.types import GeneFit, PriorParams
from scdd.parallel import parallel_map
from scdd.seeding import replicate_rng
from scdd.stats.posterior import bayes_factor_terms, score_fit

PROGRESS_EVERY = 1000


@dataclass(frozen=True)
class PermutationSettings:
    prior: PriorParams
    min_size: int = 3
    max_components: int = 5
    seed: int = 0
    adjust: bool = False


@dataclass(frozen=True)
class PermutationTask:
    """Read-only inputs for permuting one gene.

    `fitted` and `residuals` are only set for detection-rate adjusted runs.
    """

    gene_index: int
    values: np.ndarray
    in_ref: np.ndarray
    den: float
    fitted: np.ndarray | None = None
    residuals: np.ndarray | None = None


def detection_residuals(
    values: np.ndarray, detection: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Least-squares fit of values on detection rate; returns `(fitted, residuals)`."""
    y = np.asarray(values, dtype=float).ravel()
    c = np.asarray(detection, dtype=float).ravel()
    if c.size != y.size:
        raise ValueError("detection rate must align with values.")
    design = np.column_stack([np.ones_like(c), c])
    beta = np.linalg.lstsq(design, y, rcond=None)[0]
    fitted = design @ beta
    return fitted, y - fitted


def build_task(
    gene_index: int, fit: GeneFit, detection: np.ndarray | None = None
) -> PermutationTask:
    """Permutation inputs for one fitted gene.

    `detection` is the per-sample detection rate over all samples; when given,
    the task carries residuals for the adjusted procedure.
    """
    if fit.den is None:
        raise ValueError("GeneFit has no pooled score; fit with permutations > 0.")
    fitted = residuals = None
    if detection is not None:
        det = np.asarray(detection, dtype=float).ravel()[fit.positions]
        fitted, residuals = detection_residuals(fit.values, det)
    return PermutationTask(
        gene_index=int(gene_index),
        values=np.asarray(fit.values, dtype=float),
        in_ref=np.asarray(fit.in_ref, dtype=bool),
        den=float(fit.den),
        fitted=fitted,
        residuals=residuals,
    )


def _fit(values: np.ndarray, settings: PermutationSettings):
    return fit_restricted_mixture(
        values, min_size=settings.min_size, max_components=settings.max_components
    )


def replicate_statistic(
    task: PermutationTask, settings: PermutationSettings, replicate: int
) -> float:
    """Statistic for one replicate.

    Raises:
        PermutationDegeneracy: If a permuted group cannot be fit.
    """
    rng = replicate_rng(settings.seed, task.gene_index, replicate)
    try:
        if settings.adjust:
            if task.fitted is None or task.residuals is None:
                raise ValueError("Adjusted permutation requires detection-rate residuals.")
            y = task.fitted + rng.permutation(task.residuals)
            ref = task.in_ref
            combined = _fit(y, settings)
            c1 = _fit(y[ref], settings)
            c2 = _fit(y[~ref], settings)
            bf, den = bayes_factor_terms(y, ref, combined, c1, c2, settings.prior)
            return float(bf - den)

        ref = rng.permutation(task.in_ref)
        y1 = task.values[ref]
        y2 = task.values[~ref]
        bf = score_fit(y1, _fit(y1, settings), settings.prior) + score_fit(
            y2, _fit(y2, settings), settings.prior
        )
        return float(bf - task.den)
    except DegenerateInputError as exc:
        raise PermutationDegeneracy(
            f"Replicate {replicate} of gene {task.gene_index} is degenerate: {exc}"
        ) from exc


def replicate_range(
    task: PermutationTask, settings: PermutationSettings, start: int, stop: int
) -> np.ndarray:
    """Statistics for replicates `start..stop-1`; degenerate ones are NaN."""
    out = np.full(max(0, int(stop) - int(start)), np.nan, dtype=float)
    for row, r in enumerate(range(int(start), int(stop))):
        try:
            out[row] = replicate_statistic(task, settings, r)
        except PermutationDegeneracy:
            continue
    return out


def _gene_null(task: PermutationTask, *, settings: PermutationSettings, n_perm: int) -> np.ndarray:
    return replicate_range(task, settings, 0, n_perm)


def _chunk_null(
    bounds: tuple[int, int], *, task: PermutationTask, settings: PermutationSettings
) -> np.ndarray:
    return replicate_range(task, settings, bounds[0], bounds[1])


def split_replicates(n_perm: int, n_chunks: int) -> list[tuple[int, int]]:
    """Contiguous `(start, stop)` chunks covering `0..n_perm-1`."""
    n = int(n_perm)
    k = max(1, min(int(n_chunks), n)) if n > 0 else 1
    edges = np.linspace(0, n, k + 1).round().astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


class PermutationStrategy(ABC):
    """Distributes replicates of many genes across workers."""

    name = ""

    def __init__(self, n_jobs: int = 1, backend: str = "loky") -> None:
        self.n_jobs = max(1, int(n_jobs))
        self.backend = backend

    @abstractmethod
    def null_distributions(
        self,
        tasks: list[PermutationTask],
        n_perm: int,
        settings: PermutationSettings,
        logger: logging.Logger | None = None,
    ) -> list[np.ndarray]:
        """One null array of length `n_perm` per task, in task order."""


class GeneParallel(PermutationStrategy):
    """Genes go to workers; each worker runs all replicates of its genes."""

    name = "Genes"

    def null_distributions(self, tasks, n_perm, settings, logger=None):
        func = partial(_gene_null, settings=settings, n_perm=int(n_perm))
        return parallel_map(func, tasks, n_jobs=self.n_jobs, backend=self.backend)


class PermutationParallel(PermutationStrategy):
    """Genes run one at a time; each gene's replicates go to workers."""

    name = "Permutations"

    def null_distributions(self, tasks, n_perm, settings, logger=None):
        log = logger or logging.getLogger("scdd")
        chunks = split_replicates(n_perm, self.n_jobs)
        out: list[np.ndarray] = []
        t1 = time.perf_counter()
        for g, task in enumerate(tasks, start=1):
            func = partial(_chunk_null, task=task, settings=settings)
            parts = parallel_map(func, chunks, n_jobs=self.n_jobs, backend=self.backend)
            out.append(np.concatenate(parts) if parts else np.zeros(0, dtype=float))
            if g % PROGRESS_EVERY == 0:
                t2 = time.perf_counter()
                log.info("%d genes completed, took %.2f minutes", g, (t2 - t1) / 60.0)
                t1 = t2
        return out


_STRATEGIES: dict[str, type[PermutationStrategy]] = {
    GeneParallel.name: GeneParallel,
    PermutationParallel.name: PermutationParallel,
}


def make_strategy(parallel_by: str, n_jobs: int = 1, backend: str = "loky") -> PermutationStrategy:
    try:
        cls = _STRATEGIES[str(parallel_by)]
    except KeyError:
        raise ConfigurationError(
            "Please specify either 'Permutations' or 'Genes' to parallelize by; "
            f"got '{parallel_by}'."
        ) from None
    return cls(n_jobs=n_jobs, backend=backend)


def empirical_pvalue(null_stats: np.ndarray, observed: float) -> float:
    """Fraction of valid replicates whose statistic exceeds `observed`."""
    arr = np.asarray(null_stats, dtype=float).ravel()
    valid = arr[np.isfinite(arr)]
    if valid.size == 0 or not np.isfinite(float(observed)):
        warnings.warn(
            "No valid permutation replicates; p-value is undefined.",
            RuntimeWarning,
            stacklevel=2,
        )
        return float("nan")
    return float(np.sum(valid > float(observed)) / valid.size)
