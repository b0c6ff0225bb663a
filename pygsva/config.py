"""Configuration loading utilities for gene-set scoring runs."""

from __future__ import annotations

import dataclasses
import json
import math
from pathlib import Path
from typing import Any, Mapping

from pygsva.core.types import GSVAConfig, ParallelConfig

# dotted option names of the R GSVA package
KEY_ALIASES: dict[str, str] = {
    "mx.diff": "mx_diff",
    "abs.ranking": "abs_ranking",
    "min.sz": "min_size",
    "max.sz": "max_size",
    "ssgsea.norm": "ssgsea_norm",
    "parallel.sz": "n_jobs",
    "chunk.size": "chunk_size",
}
BOOL_KEYS = {"mx_diff", "abs_ranking", "ssgsea_norm", "out_of_core"}
PARALLEL_KEYS = {f.name for f in dataclasses.fields(ParallelConfig)}
CONFIG_KEYS = {f.name for f in dataclasses.fields(GSVAConfig)} - {"parallel"}


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Load a scoring config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


def _coerce(key: str, value: Any) -> Any:
    if key in BOOL_KEYS:
        if not isinstance(value, bool):
            raise ValueError(f"'{key}' must be true or false, got {value!r}.")
        return value
    if key in {"method", "kcdf", "backend"}:
        return str(value).strip().lower()
    if key == "max_size":
        if value is None or (isinstance(value, str) and value.lower() in {"inf", "none"}):
            return None
        if isinstance(value, float) and math.isinf(value):
            return None
        return int(value)
    if key in {"min_size", "n_jobs"}:
        return int(value)
    if key in {"chunk_size", "max_pending"}:
        return None if value is None else int(value)
    if key == "tau":
        return None if value is None else float(value)
    return value


def config_from_mapping(
    mapping: Mapping[str, Any], base: GSVAConfig | None = None
) -> GSVAConfig:
    """Build a validated `GSVAConfig` from plain options.

    Accepts both `mx.diff`-style and `mx_diff`-style names. Parallel options
    may be given at top level or nested under `parallel` (a mapping or a
    `ParallelConfig`). Values in `mapping` override `base`.
    """
    cfg = base or GSVAConfig()
    top: dict[str, Any] = {}
    par: dict[str, Any] = {}
    parallel_obj: ParallelConfig | None = None

    for raw_key, value in mapping.items():
        key = KEY_ALIASES.get(str(raw_key), str(raw_key))
        if key == "parallel":
            if isinstance(value, ParallelConfig):
                parallel_obj = value
            elif isinstance(value, Mapping):
                for sub_key, sub_val in value.items():
                    name = KEY_ALIASES.get(str(sub_key), str(sub_key))
                    if name not in PARALLEL_KEYS:
                        raise ValueError(f"Unknown parallel option '{sub_key}'.")
                    par[name] = _coerce(name, sub_val)
            else:
                raise ValueError(
                    f"'parallel' must be a mapping or ParallelConfig, got {type(value).__name__}."
                )
        elif key in PARALLEL_KEYS:
            par[key] = _coerce(key, value)
        elif key in CONFIG_KEYS:
            top[key] = _coerce(key, value)
        else:
            raise ValueError(f"Unknown configuration option '{raw_key}'.")

    parallel = parallel_obj or cfg.parallel
    if par:
        parallel = dataclasses.replace(parallel, **par)
    return dataclasses.replace(cfg, parallel=parallel, **top)


def load_config(path: str | Path) -> GSVAConfig:
    """Load and validate a `GSVAConfig` from strict JSON."""
    return config_from_mapping(load_json_config(path))
