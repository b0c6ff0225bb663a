"""Shared utilities for pygsva workflows."""

from __future__ import annotations

import logging
from pathlib import Path


def ensure_dir(path: str | Path) -> None:
    """Create a directory (and parents) if it does not exist."""
    if str(path) == "":
        return
    Path(path).mkdir(parents=True, exist_ok=True)


def setup_logger(log_path: Path | None, logger_name: str = "pygsva") -> logging.Logger:
    """Attach stream (and optional file) handlers to the named logger."""
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    if log_path is not None:
        ensure_dir(Path(log_path).parent)
        fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger
