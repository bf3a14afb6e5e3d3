"""Configuration loading utilities for scDD runs."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any

from scdd.core.errors import ConfigurationError
from scdd.core.types import DDConfig, PriorParams

PRIOR_KEY = "prior"


def _read_json_object(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ConfigurationError(f"Run config '{config_path}' must be a .json file.")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Run config '{config_path}' is not valid JSON "
            f"(line {exc.lineno}, column {exc.colno}): {exc.msg}"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Run config '{config_path}' must hold a JSON object, not {type(data).__name__}."
        )
    return data


def load_config(path: str | Path) -> tuple[PriorParams, DDConfig]:
    """Read a JSON run config into prior and run settings."""
    return config_from_dict(_read_json_object(Path(path)))


def _known_fields(cls) -> set[str]:
    return {f.name for f in dataclasses.fields(cls)}


def config_from_dict(data: dict[str, Any]) -> tuple[PriorParams, DDConfig]:
    """Build prior and run settings from a parsed config mapping.

    Run settings sit at the top level; prior hyperparameters go under a
    nested "prior" object. Unknown keys are rejected.
    """
    run = dict(data)
    prior_raw = run.pop(PRIOR_KEY, None) or {}
    if not isinstance(prior_raw, dict):
        raise ConfigurationError("Config key 'prior' must be a JSON object.")

    unknown = sorted(set(run) - _known_fields(DDConfig))
    unknown += sorted(f"prior.{k}" for k in set(prior_raw) - _known_fields(PriorParams))
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}.")
    return PriorParams(**prior_raw), DDConfig(**run)
