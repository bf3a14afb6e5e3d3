"""Core modeling subpackage."""

from scdd.core.clustering import component_summary, fit_restricted_mixture
from scdd.core.errors import ConfigurationError, DegenerateInputError, PermutationDegeneracy
from scdd.core.features import resolve_condition, resolve_expression
from scdd.core.filtering import filter_genes
from scdd.core.types import ClusterFit, DDConfig, DDResults, FilterResult, GeneFit, PriorParams

__all__ = [
    "ClusterFit",
    "DDConfig",
    "DDResults",
    "FilterResult",
    "GeneFit",
    "PriorParams",
    "ConfigurationError",
    "DegenerateInputError",
    "PermutationDegeneracy",
    "component_summary",
    "fit_restricted_mixture",
    "filter_genes",
    "resolve_condition",
    "resolve_expression",
]
