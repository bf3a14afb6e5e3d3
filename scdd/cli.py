"""Command-line interface for genome-wide scDD runs on .h5ad files."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import Iterable

import scanpy as sc

from scdd.config import load_config
from scdd.core.types import PARALLEL_CHOICES, DDConfig, PriorParams
from scdd.pipeline import run_scdd
from scdd.pipeline_utils import ensure_dir, setup_logger

OUTPUT_FILES = {
    "genes": "scdd_genes.csv",
    "zhat_combined": "zhat_combined.csv",
    "zhat_c1": "zhat_c1.csv",
    "zhat_c2": "zhat_c2.csv",
}


def _read_adata(h5ad_path: str):
    path = Path(h5ad_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file '{h5ad_path}' not found.")
    return sc.read_h5ad(path)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Detect genes with differential distributions between two conditions"
    )
    parser.add_argument("--h5ad", required=True, help="Path to .h5ad file (cells x genes)")
    parser.add_argument(
        "--condition", default=None, help="adata.obs column holding the two conditions"
    )
    parser.add_argument("--layer", default=None, help="Expression layer (default: NormCounts or X)")
    parser.add_argument("--config", default=None, help="JSON config with run and prior settings")
    parser.add_argument("--permutations", type=int, default=None, help="Permutations per gene (0 = KS test)")
    parser.add_argument(
        "--test-zeroes",
        dest="test_zeroes",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Test for a difference in the proportion of zeroes",
    )
    parser.add_argument(
        "--adjust-perms",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Permute residuals adjusted for detection rate",
    )
    parser.add_argument("--parallel-by", choices=PARALLEL_CHOICES, default=None)
    parser.add_argument("--min-size", type=int, default=None, help="Minimum valid cluster size")
    parser.add_argument("--min-nonzero", type=int, default=None, help="Minimum nonzero cells per condition")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel workers")
    parser.add_argument("--seed", type=int, default=None, help="Permutation seed")
    parser.add_argument("--outdir", default=".", help="Output directory root")
    return parser


def _resolve_settings(args: argparse.Namespace) -> tuple[PriorParams, DDConfig]:
    if args.config:
        prior, cfg = load_config(args.config)
    else:
        prior, cfg = PriorParams(), DDConfig()
    overrides = {
        "condition": args.condition,
        "permutations": args.permutations,
        "test_zeroes": args.test_zeroes,
        "adjust_perms": args.adjust_perms,
        "parallel_by": args.parallel_by,
        "min_size": args.min_size,
        "min_nonzero": args.min_nonzero,
        "n_jobs": args.n_jobs,
        "seed": args.seed,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return prior, dataclasses.replace(cfg, **overrides)


def main(argv: Iterable[str] | None = None) -> int:
    """Run scDD on an .h5ad file and write result tables.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    outdir = Path(args.outdir)
    ensure_dir(outdir.as_posix())
    logger = setup_logger(outdir / "logs" / "scdd.log", "scdd")

    prior, cfg = _resolve_settings(args)
    adata = _read_adata(args.h5ad)
    logger.info("Loaded %s: %d cells x %d genes", args.h5ad, adata.n_obs, adata.n_vars)

    res = run_scdd(adata, prior=prior, config=cfg, layer=args.layer, logger=logger)

    res.genes.to_csv(outdir / OUTPUT_FILES["genes"], index=False)
    res.zhat_combined.to_csv(outdir / OUTPUT_FILES["zhat_combined"])
    res.zhat_c1.to_csv(outdir / OUTPUT_FILES["zhat_c1"])
    res.zhat_c2.to_csv(outdir / OUTPUT_FILES["zhat_c2"])
    counts = res.genes["dd_category"].value_counts()
    logger.info(
        "Categories: %s",
        ", ".join(f"{k}={int(v)}" for k, v in counts.items()),
    )
    logger.info("Wrote results to %s", outdir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
