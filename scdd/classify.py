"""Assignment of differential-distribution patterns (DE, DP, DM, DB)."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from scdd.core.clustering import component_summary
from scdd.core.types import GeneFit
from scdd.stats.permutation import detection_residuals
from scdd.stats.scoring import bh_fdr, cluster_condition_pvalue, mean_shift_pvalue

# Components within this many pooled SDs of each other share a location.
MATCH_TOLERANCE = 1.0
NO_CALL = "NC"


def _same_location(mu_a: float, sd_a: float, mu_b: float, sd_b: float) -> bool:
    pooled = float(np.sqrt((sd_a**2 + sd_b**2) / 2.0))
    gap = abs(float(mu_a) - float(mu_b))
    if pooled == 0.0:
        return gap == 0.0
    return gap <= MATCH_TOLERANCE * pooled


def _all_matched(
    src: tuple[np.ndarray, np.ndarray], dst: tuple[np.ndarray, np.ndarray]
) -> bool:
    """True when every component of `src` sits at some component of `dst`."""
    return all(
        any(_same_location(mu, sd, mu2, sd2) for mu2, sd2 in zip(*dst))
        for mu, sd in zip(*src)
    )


def classify_gene(fit: GeneFit, min_size: int) -> str:
    """Pattern of one gene already judged to have a differential distribution.

    - DE: one component per condition, at different locations.
    - DP: same number of components at shared locations, no extra pooled modes.
    - DM: differing component counts, the less modal condition's components
      all shared with the other.
    - DB: anything else (a variance change at a shared location, shifted
      components with multiple modes, or a modality change with a shift).
    """
    ref = fit.in_ref
    m1, s1, _ = component_summary(fit.values[ref], fit.cond1, min_size)
    m2, s2, _ = component_summary(fit.values[~ref], fit.cond2, min_size)
    k1, k2 = m1.size, m2.size
    k_all = max(int(fit.combined.n_valid), 1)

    if k1 == 1 and k2 == 1:
        return "DB" if _same_location(m1[0], s1[0], m2[0], s2[0]) else "DE"
    if k1 == k2:
        shared = _all_matched((m1, s1), (m2, s2)) and _all_matched((m2, s2), (m1, s1))
        return "DP" if shared and k_all <= k1 else "DB"
    small, large = ((m1, s1), (m2, s2)) if k1 < k2 else ((m2, s2), (m1, s1))
    if _all_matched(small, large) and k_all <= max(k1, k2):
        return "DM"
    return "DB"


def classify_genes(fits: Sequence[GeneFit], genes: np.ndarray, min_size: int) -> list[str]:
    return [classify_gene(fits[int(g)], min_size) for g in np.asarray(genes, dtype=int)]


def recovery_pvalue(
    fit: GeneFit, min_size: int, detection: np.ndarray | None = None
) -> float:
    """Evidence of condition dependence outside the primary test.

    Multimodal pooled fits are tested for cluster membership by condition;
    unimodal ones for a mean shift, on detection-rate residuals when
    `detection` is given.
    """
    if fit.combined.n_valid > 1:
        return cluster_condition_pvalue(fit, min_size)
    values = fit.values
    if detection is not None:
        det = np.asarray(detection, dtype=float).ravel()[fit.positions]
        values = detection_residuals(values, det)[1]
    return mean_shift_pvalue(values, fit.in_ref)


def recover_nonsignificant(
    fits: Sequence[GeneFit],
    nonsig: np.ndarray,
    *,
    threshold: float,
    min_size: int,
    detection: np.ndarray | None = None,
) -> tuple[list[str], np.ndarray]:
    """Tag non-significant genes "NC" (recovered) or "NS".

    Returns the tags and the BH-adjusted recovery p-values, both aligned with
    `nonsig`.
    """
    idx = np.asarray(nonsig, dtype=int).ravel()
    if idx.size == 0:
        return [], np.zeros(0, dtype=float)
    raw = np.array([recovery_pvalue(fits[g], min_size, detection) for g in idx], dtype=float)
    adj = bh_fdr(raw)
    tags = [NO_CALL if q < float(threshold) else "NS" for q in adj]
    return tags, adj
