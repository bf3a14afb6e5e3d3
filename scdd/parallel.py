"""Order-stable parallel map over joblib backends."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

from joblib import Parallel, delayed

from scdd.core.errors import ConfigurationError
from scdd.core.types import BACKENDS

T = TypeVar("T")
R = TypeVar("R")


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    *,
    n_jobs: int = 1,
    backend: str = "loky",
    batch_size: int | str = "auto",
) -> list[R]:
    """Apply `func` to items; output order always matches input order.

    `n_jobs == 1` (or a single item) runs serially in-process.
    """
    seq = list(items)
    if not seq:
        return []
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unsupported parallel backend '{backend}'. Use one of: {', '.join(BACKENDS)}."
        )
    jobs = max(1, int(n_jobs))
    if jobs == 1 or len(seq) == 1:
        return [func(item) for item in seq]
    return list(
        Parallel(n_jobs=jobs, backend=backend, batch_size=batch_size)(
            delayed(func)(item) for item in seq
        )
    )
