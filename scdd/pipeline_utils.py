"""Shared helpers for scDD command-line runs."""

from __future__ import annotations

import logging
import os
from pathlib import Path


def ensure_dir(path: str) -> None:
    """Create a directory (and parents) if it does not exist."""
    if path == "":
        return
    os.makedirs(path, exist_ok=True)


def setup_logger(log_path: Path, logger_name: str = "scdd") -> logging.Logger:
    ensure_dir(log_path.parent.as_posix())
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger
