"""scDD public API."""

from scdd._version import __version__
from scdd.core.types import DDConfig, DDResults, PriorParams
from scdd.pipeline import run_scdd
from scdd.results import results
from scdd.simulate import simulate_dataset, simulate_gene

__all__ = [
    "__version__",
    "DDConfig",
    "DDResults",
    "PriorParams",
    "run_scdd",
    "results",
    "simulate_dataset",
    "simulate_gene",
]
