"""Statistical utilities for scDD."""

from scdd.stats.permutation import (
    GeneParallel,
    PermutationParallel,
    empirical_pvalue,
    make_strategy,
)
from scdd.stats.posterior import bayes_factor_terms, log_marginal_likelihood
from scdd.stats.scoring import bh_fdr, ks_pvalue
from scdd.stats.zeroes import zero_pvalue, zero_pvalues

__all__ = [
    "GeneParallel",
    "PermutationParallel",
    "make_strategy",
    "empirical_pvalue",
    "bayes_factor_terms",
    "log_marginal_likelihood",
    "bh_fdr",
    "ks_pvalue",
    "zero_pvalue",
    "zero_pvalues",
]
