"""Synthetic two-condition genes for the canonical differential-distribution patterns."""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
import pandas as pd

PATTERNS: tuple[str, ...] = ("null", "DE", "DP", "DM", "DB", "DZ")


def _mixture_draw(
    n: int,
    means: np.ndarray,
    weights: np.ndarray,
    sd: float,
    rng: np.random.Generator,
) -> np.ndarray:
    w = np.asarray(weights, dtype=float)
    comp = rng.choice(len(means), size=int(n), p=w / w.sum())
    return rng.normal(np.asarray(means, dtype=float)[comp], float(sd))


def _apply_zeroes(expr: np.ndarray, zero_prop: float, rng: np.random.Generator) -> np.ndarray:
    p = float(zero_prop)
    if p < 0.0 or p >= 1.0:
        raise ValueError("zero proportion must be in [0, 1).")
    out = expr.copy()
    n_zero = int(round(p * out.size))
    if n_zero > 0:
        out[rng.choice(out.size, size=n_zero, replace=False)] = 0.0
    return out


def _pattern_components(pattern: str, mu: float, delta: float) -> tuple[tuple, tuple]:
    lo, hi = mu, mu + delta
    if pattern in ("null", "DZ"):
        return ([lo], [1.0]), ([lo], [1.0])
    if pattern == "DE":
        return ([lo], [1.0]), ([hi], [1.0])
    if pattern == "DP":
        return ([lo, hi], [0.8, 0.2]), ([lo, hi], [0.2, 0.8])
    if pattern == "DM":
        return ([lo], [1.0]), ([lo, hi], [0.5, 0.5])
    if pattern == "DB":
        return ([lo, hi], [0.5, 0.5]), ([mu + 0.5 * delta], [1.0])
    raise ValueError(f"Unknown pattern '{pattern}'. Use one of: {', '.join(PATTERNS)}.")


def simulate_gene(
    pattern: str,
    n_per_condition: int,
    rng: np.random.Generator,
    *,
    mu: float = 2.0,
    sd: float = 0.25,
    shift: float = 6.0,
    zero_c1: float = 0.0,
    zero_c2: float | None = None,
) -> np.ndarray:
    """Expression of one gene across `2 * n_per_condition` samples.

    The first half of the samples is condition 1. Nonzero values are the
    exponential of a normal mixture on the log scale with components `shift`
    standard deviations apart. "DZ" keeps the nonzero distribution fixed and
    raises the zero proportion of condition 2 (0.5 unless `zero_c2` is given).
    """
    n = int(n_per_condition)
    if n < 1:
        raise ValueError("n_per_condition must be >= 1.")
    if zero_c2 is None:
        zero_c2 = 0.5 if pattern == "DZ" else zero_c1
    (m1, w1), (m2, w2) = _pattern_components(str(pattern), float(mu), float(shift) * float(sd))
    x1 = np.exp(_mixture_draw(n, np.array(m1), np.array(w1), sd, rng))
    x2 = np.exp(_mixture_draw(n, np.array(m2), np.array(w2), sd, rng))
    return np.concatenate([_apply_zeroes(x1, zero_c1, rng), _apply_zeroes(x2, zero_c2, rng)])


def simulate_dataset(
    patterns: Mapping[str, int],
    n_per_condition: int = 100,
    *,
    seed: int = 0,
    labels: tuple[str, str] = ("c1", "c2"),
    **params: float,
) -> tuple[pd.DataFrame, np.ndarray]:
    """Genes x samples DataFrame with `patterns[p]` genes of each pattern.

    Returns the expression frame (genes named `<pattern>_<i>`) and the
    per-sample condition labels.
    """
    rng = np.random.default_rng(int(seed))
    rows: list[np.ndarray] = []
    names: list[str] = []
    for pattern, count in patterns.items():
        for i in range(int(count)):
            rows.append(simulate_gene(pattern, n_per_condition, rng, **params))
            names.append(f"{pattern}_{i + 1}")
    n = int(n_per_condition)
    samples = [f"cell{j + 1}" for j in range(2 * n)]
    frame = pd.DataFrame(np.vstack(rows) if rows else np.zeros((0, 2 * n)), index=names, columns=samples)
    condition = np.array([labels[0]] * n + [labels[1]] * n, dtype=object)
    return frame, condition
