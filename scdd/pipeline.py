"""scDD orchestration: filter, fit, test, classify, zero-test, assemble."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

from scdd.classify import NO_CALL, classify_genes, recover_nonsignificant
from scdd.core.clustering import fit_restricted_mixture
from scdd.core.errors import ConfigurationError, DegenerateInputError
from scdd.core.features import resolve_condition, resolve_expression
from scdd.core.filtering import filter_genes
from scdd.core.types import DD_CATEGORIES, DDConfig, DDResults, GeneFit, PriorParams
from scdd.core.utils import dense_row, detection_rate, log_nonzero
from scdd.parallel import parallel_map
from scdd.results import store_results
from scdd.stats.permutation import (
    PermutationSettings,
    build_task,
    empirical_pvalue,
    make_strategy,
)
from scdd.stats.posterior import bayes_factor_terms
from scdd.stats.scoring import bh_fdr, ks_pvalue
from scdd.stats.zeroes import zero_pvalues


@dataclass(frozen=True)
class _FitJob:
    gene_index: int
    gene_name: str
    expr: np.ndarray
    in_ref: np.ndarray


def fit_gene(
    expr: np.ndarray,
    in_ref: np.ndarray,
    *,
    prior: PriorParams,
    min_size: int = 3,
    max_components: int = 5,
    score: bool = True,
) -> GeneFit:
    """Fit the pooled and per-condition partitions of one gene.

    Only nonzero values are clustered, on the log scale. With `score`, the
    within-condition (`bf`) and pooled (`den`) log marginal likelihoods are
    attached for the permutation test.

    Raises:
        DegenerateInputError: If any group has fewer than two distinct values.
    """
    values, ref, positions = log_nonzero(expr, in_ref)
    fit = partial(fit_restricted_mixture, min_size=min_size, max_components=max_components)
    combined = fit(values)
    cond1 = fit(values[ref])
    cond2 = fit(values[~ref])
    bf = den = None
    if score:
        bf, den = bayes_factor_terms(values, ref, combined, cond1, cond2, prior)
    return GeneFit(
        values=values,
        in_ref=ref,
        positions=positions,
        combined=combined,
        cond1=cond1,
        cond2=cond2,
        bf=bf,
        den=den,
    )


def _safe_fit(
    job: _FitJob, *, prior: PriorParams, min_size: int, max_components: int, score: bool
) -> tuple[GeneFit | None, str | None]:
    try:
        fit = fit_gene(
            job.expr,
            job.in_ref,
            prior=prior,
            min_size=min_size,
            max_components=max_components,
            score=score,
        )
    except (DegenerateInputError, ValueError, np.linalg.LinAlgError) as exc:
        return None, f"{type(exc).__name__}: {exc}"
    return fit, None


def _nonzero_pvalues(
    fits: list[GeneFit],
    gene_index: np.ndarray,
    matrix,
    cfg: DDConfig,
    prior: PriorParams,
    logger: logging.Logger,
) -> np.ndarray:
    if cfg.permutations == 0:
        logger.info(
            "Notice: Number of permutations is set to zero; using Kolmogorov-Smirnov "
            "to test for differences in distributions instead of the Bayes Factor "
            "permutation test"
        )
        return np.array([ks_pvalue(f.values, f.in_ref) for f in fits], dtype=float)

    logger.info(
        "Performing permutations to evaluate independence of clustering and condition for each gene"
    )
    logger.info("Parallelizing by %s", cfg.parallel_by)
    detection = None
    if cfg.adjust_perms and len(fits) > 0:
        rows = sp.csr_matrix(matrix)[gene_index] if sp.issparse(matrix) else matrix[gene_index]
        detection = detection_rate(rows)
    tasks = [build_task(int(g), f, detection) for g, f in zip(gene_index, fits)]
    settings = PermutationSettings(
        prior=prior,
        min_size=cfg.min_size,
        max_components=cfg.max_components,
        seed=cfg.seed,
        adjust=cfg.adjust_perms,
    )
    strategy = make_strategy(cfg.parallel_by, n_jobs=cfg.n_jobs, backend=cfg.backend)
    nulls = strategy.null_distributions(tasks, cfg.permutations, settings, logger=logger)
    return np.array(
        [empirical_pvalue(null, f.observed_statistic) for null, f in zip(nulls, fits)],
        dtype=float,
    )


def _assignment_maps(
    matrix,
    in_ref: np.ndarray,
    fits: dict[int, GeneFit],
    genes: pd.Index,
    samples: pd.Index,
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    nz = (matrix > 0).toarray() if sp.issparse(matrix) else np.asarray(matrix) > 0
    zhat = nz.astype(np.int32)
    ref_cols = np.flatnonzero(in_ref)
    alt_cols = np.flatnonzero(~in_ref)
    col_in_group = np.empty(in_ref.size, dtype=int)
    col_in_group[ref_cols] = np.arange(ref_cols.size)
    col_in_group[alt_cols] = np.arange(alt_cols.size)
    zhat1 = zhat[:, ref_cols].copy()
    zhat2 = zhat[:, alt_cols].copy()

    for g, fit in fits.items():
        zhat[g, fit.positions] = fit.combined.labels
        zhat1[g, col_in_group[fit.positions[fit.in_ref]]] = fit.cond1.labels
        zhat2[g, col_in_group[fit.positions[~fit.in_ref]]] = fit.cond2.labels

    return (
        pd.DataFrame(zhat, index=genes, columns=samples),
        pd.DataFrame(zhat1, index=genes, columns=samples[ref_cols]),
        pd.DataFrame(zhat2, index=genes, columns=samples[alt_cols]),
    )


def run_scdd(
    data: Any,
    condition: Any = None,
    *,
    prior: PriorParams | None = None,
    config: DDConfig | None = None,
    layer: str | None = None,
    logger: logging.Logger | None = None,
    **overrides: Any,
) -> DDResults:
    """Find genes with differential distributions across two conditions.

    Args:
        data: AnnData (cells x genes), or a genes x samples DataFrame, array or
            sparse matrix of nonnegative normalized expression.
        condition: Per-sample labels, or the name of a column in `adata.obs`.
            Defaults to `config.condition`.
        prior: Normal/Inverse-Gamma prior; defaults to `PriorParams()`.
        config: Run configuration; keyword `overrides` replace its fields.
        layer: AnnData layer to read; `NormCounts` is used when present.
        logger: Destination for progress notices.

    Returns:
        `DDResults` with the per-gene table and three cluster-assignment maps.
        AnnData input additionally receives them in `adata.uns['scdd']`.
    """
    log = logger or logging.getLogger("scdd")
    unknown = sorted(set(overrides) - {f.name for f in dataclasses.fields(DDConfig)})
    if unknown:
        raise ConfigurationError(f"Unknown run_scdd options: {', '.join(unknown)}.")
    cfg = dataclasses.replace(config or DDConfig(), **overrides)
    prior_params = prior or PriorParams()

    expr = resolve_expression(data, layer=layer, logger=log)
    matrix = expr.matrix
    n_genes, n_samples = int(matrix.shape[0]), int(matrix.shape[1])
    in_ref, reference = resolve_condition(
        cfg.condition if condition is None else condition, n_samples, obs=expr.obs
    )
    filt = filter_genes(
        matrix,
        in_ref,
        min_size=cfg.min_size,
        min_nonzero=cfg.min_nonzero,
        test_zeroes=cfg.test_zeroes,
        logger=log,
    )

    log.info("Clustering observed expression data for each gene")
    log.info("Setting up parallel back-end using %d cores", cfg.n_jobs)
    rows = sp.csr_matrix(matrix) if sp.issparse(matrix) else matrix
    jobs = [
        _FitJob(int(g), str(expr.gene_names[g]), dense_row(rows, int(g)), in_ref)
        for g in filt.tofit
    ]
    fitter = partial(
        _safe_fit,
        prior=prior_params,
        min_size=cfg.min_size,
        max_components=cfg.max_components,
        score=cfg.permutations > 0,
    )
    outcomes = parallel_map(fitter, jobs, n_jobs=cfg.n_jobs, backend=cfg.backend)

    fitted: dict[int, GeneFit] = {}
    for job, (fit, err) in zip(jobs, outcomes):
        if fit is None:
            log.warning("Fit skipped for gene %s (%s); reporting as not tested.", job.gene_name, err)
            continue
        fitted[job.gene_index] = fit
    gene_index = np.asarray(sorted(fitted), dtype=int)
    fits = [fitted[int(g)] for g in gene_index]

    pvals = _nonzero_pvalues(fits, gene_index, matrix, cfg, prior_params, log)
    threshold = cfg.significance_threshold
    adj = bh_fdr(pvals)
    sig = np.flatnonzero(adj < threshold)
    nonsig = np.setdiff1d(np.arange(len(fits)), sig)

    log.info("Classifying significant genes into patterns")
    cats = np.full(len(fits), "NS", dtype=object)
    cats[sig] = classify_genes(fits, sig, cfg.min_size)
    detection = None
    if cfg.adjust_perms and len(fits) > 0:
        detection = detection_rate(rows[gene_index])
    tags, _ = recover_nonsignificant(
        fits, nonsig, threshold=threshold, min_size=cfg.min_size, detection=detection
    )
    cats[nonsig] = tags
    recovered = nonsig[np.asarray([t == NO_CALL for t in tags], dtype=bool)]
    if recovered.size > 0:
        log.info("Recovered %d additional genes with evidence of DD", recovered.size)
        cats[recovered] = classify_genes(fits, recovered, cfg.min_size)

    pvals_all = np.full(n_genes, np.nan)
    pvals_all[gene_index] = pvals
    cats_all = np.full(n_genes, "NS", dtype=object)
    cats_all[gene_index] = cats
    comps = np.full((n_genes, 3), np.nan)
    for g, fit in zip(gene_index, fits):
        comps[g] = (fit.combined.n_valid, fit.cond1.n_valid, fit.cond2.n_valid)

    table = pd.DataFrame(
        {
            "gene": expr.gene_names,
            "nonzero_pvalue": pvals_all,
            "nonzero_pvalue_adj": bh_fdr(pvals_all),
        },
        index=expr.gene_names,
    )
    if cfg.test_zeroes:
        ns = np.flatnonzero(~np.isin(cats_all, DD_CATEGORIES))
        pz = np.full(n_genes, np.nan)
        pz[ns] = zero_pvalues(rows, in_ref, ns)
        pz_adj = bh_fdr(pz)
        cats_all[ns] = np.where(pz_adj[ns] < 0.025, "DZ", "NS")
        table["zero_pvalue"] = pz
        table["zero_pvalue_adj"] = pz_adj
    table["dd_category"] = cats_all.astype(str)
    for j, col in enumerate(("clusters_combined", "clusters_c1", "clusters_c2")):
        table[col] = pd.array(
            [pd.NA if np.isnan(v) else int(v) for v in comps[:, j]], dtype="Int64"
        )

    zhat, zhat1, zhat2 = _assignment_maps(
        matrix, in_ref, fitted, expr.gene_names, expr.sample_names
    )
    res = DDResults(
        genes=table,
        zhat_combined=zhat,
        zhat_c1=zhat1,
        zhat_c2=zhat2,
        config=cfg,
        prior=prior_params,
        reference=reference,
        metadata={
            "n_genes": n_genes,
            "n_fitted": len(fits),
            "n_too_sparse": int(filt.too_sparse.size),
            "n_constant": int(filt.constant.size),
            "n_fit_failed": len(jobs) - len(fits),
            "n_significant": int(sig.size),
            "n_recovered": int(recovered.size),
        },
    )
    if expr.obs is not None:
        store_results(data, res)
    return res
