"""Exception taxonomy for scDD modeling and testing."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid inputs or settings, raised before any modeling work starts."""


class DegenerateInputError(ValueError):
    """Mixture fitting was asked to partition fewer than two distinct values."""


class PermutationDegeneracy(RuntimeError):
    """A permutation replicate could not be fit.

    Raised inside the permutation engine only; replicates that raise it are
    recorded as missing and never propagate to the caller.
    """
