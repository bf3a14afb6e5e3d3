"""Storage and retrieval of scDD results on AnnData objects."""

from __future__ import annotations

from typing import Any

import pandas as pd

from scdd.core.types import DDResults

UNS_KEY = "scdd"
RESULT_KINDS: tuple[str, ...] = ("Genes", "Zhat.combined", "Zhat.c1", "Zhat.c2")


def _as_mapping(res: DDResults) -> dict[str, pd.DataFrame]:
    return {
        "Genes": res.genes,
        "Zhat.combined": res.zhat_combined,
        "Zhat.c1": res.zhat_c1,
        "Zhat.c2": res.zhat_c2,
    }


def store_results(adata, res: DDResults) -> None:
    """Place the results table and assignment maps in `adata.uns['scdd']`."""
    adata.uns[UNS_KEY] = _as_mapping(res)


def results(obj: Any, kind: str = "Genes") -> pd.DataFrame:
    """Extract one results object from a `DDResults` or an analyzed AnnData.

    `kind` is "Genes" (per-gene table) or one of the cluster-assignment maps
    "Zhat.combined", "Zhat.c1", "Zhat.c2" (genes x samples, 0 marks zeroes).
    """
    if kind not in RESULT_KINDS:
        raise KeyError(f"Unknown results kind '{kind}'. Use one of: {', '.join(RESULT_KINDS)}.")
    if isinstance(obj, DDResults):
        return _as_mapping(obj)[kind]
    uns = getattr(obj, "uns", None)
    if uns is None or UNS_KEY not in uns:
        raise KeyError("No scDD results found; run `run_scdd` on this object first.")
    return uns[UNS_KEY][kind]
