"""Per-replicate random streams that do not depend on worker layout."""

from __future__ import annotations

import hashlib

import numpy as np


def stable_seed(master_seed: int, *indices: int) -> int:
    """Fold a master seed and integer indices into a uint32 seed.

    Each value is packed as a signed 64-bit big-endian word before hashing,
    so (1, 23) and (12, 3) give different seeds.
    """
    payload = b"".join(
        int(v).to_bytes(8, "big", signed=True) for v in (master_seed, *indices)
    )
    return int.from_bytes(hashlib.sha256(payload).digest()[:4], "big")


def replicate_rng(master_seed: int, gene_index: int, replicate: int) -> np.random.Generator:
    """Generator for one permutation replicate of one gene.

    Depends only on its arguments, so any split of replicates across workers
    draws the same permutations.
    """
    return np.random.default_rng(stable_seed(master_seed, gene_index, replicate))
