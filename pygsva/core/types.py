"""Typed configuration and result containers for gene-set scoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np
import pandas as pd

METHODS: tuple[str, ...] = ("gsva", "ssgsea", "zscore", "plage")
KCDFS: tuple[str, ...] = ("gaussian", "poisson", "none")
BACKENDS: tuple[str, ...] = ("sequential", "threading", "loky", "multiprocessing")


@dataclass(frozen=True)
class GsvaParams:
    """Kernel-CDF statistic followed by the symmetric random walk."""

    kcdf: str = "gaussian"
    tau: float = 1.0
    mx_diff: bool = True
    abs_ranking: bool = False

    def __post_init__(self) -> None:
        if self.kcdf not in KCDFS:
            raise ValueError(f"kcdf must be one of {KCDFS}, got '{self.kcdf}'.")
        if not np.isfinite(self.tau) or self.tau <= 0:
            raise ValueError(f"tau must be a positive real, got {self.tau}.")


@dataclass(frozen=True)
class SsgseaParams:
    """Rank-weighted walk summed over positions, optionally range-normalised."""

    tau: float = 0.25
    normalize: bool = True

    def __post_init__(self) -> None:
        if not np.isfinite(self.tau) or self.tau <= 0:
            raise ValueError(f"tau must be a positive real, got {self.tau}.")


@dataclass(frozen=True)
class ZscoreParams:
    """Combined z-score: sum of standardised members over sqrt(size)."""


@dataclass(frozen=True)
class PlageParams:
    """First right-singular vector of the standardised member submatrix."""


MethodParams = Union[GsvaParams, SsgseaParams, ZscoreParams, PlageParams]

METHOD_NAMES: dict[type, str] = {
    GsvaParams: "gsva",
    SsgseaParams: "ssgsea",
    ZscoreParams: "zscore",
    PlageParams: "plage",
}


def method_name(params: MethodParams) -> str:
    try:
        return METHOD_NAMES[type(params)]
    except KeyError:
        raise TypeError(f"Unsupported method parameters: {type(params).__name__}.") from None


@dataclass(frozen=True)
class ParallelConfig:
    """Execution strategy for the chunk scheduler.

    - `backend`: one of `BACKENDS`; ignored when an executor is injected.
    - `chunk_size`: samples (or genes / gene sets) per unit; `None` picks a
      size giving a few chunks per worker.
    - `max_pending`: units in flight at once; bounds materialised memory.
    - `out_of_core`: keep the Statistic Matrix in a disk-backed memmap.
    """

    backend: str = "sequential"
    n_jobs: int = 1
    chunk_size: int | None = None
    max_pending: int | None = None
    out_of_core: bool = False
    tmp_dir: str | None = None

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got '{self.backend}'.")
        if int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be >= 1.")
        if self.chunk_size is not None and int(self.chunk_size) < 1:
            raise ValueError("chunk_size must be a positive integer.")
        if self.max_pending is not None and int(self.max_pending) < 1:
            raise ValueError("max_pending must be a positive integer.")


@dataclass(frozen=True)
class GSVAConfig:
    """Full configuration of one scoring call."""

    method: str = "gsva"
    kcdf: str = "gaussian"
    mx_diff: bool = True
    abs_ranking: bool = False
    tau: float | None = None
    min_size: int = 1
    max_size: int | None = None
    ssgsea_norm: bool = True
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got '{self.method}'.")
        if int(self.min_size) < 1:
            raise ValueError("min_size must be a positive integer.")
        if self.max_size is not None and int(self.max_size) < int(self.min_size):
            raise ValueError(
                f"max_size ({self.max_size}) must be >= min_size ({self.min_size})."
            )

    def method_params(self) -> MethodParams:
        if self.method == "gsva":
            return GsvaParams(
                kcdf=self.kcdf,
                tau=1.0 if self.tau is None else float(self.tau),
                mx_diff=bool(self.mx_diff),
                abs_ranking=bool(self.abs_ranking),
            )
        if self.method == "ssgsea":
            return SsgseaParams(
                tau=0.25 if self.tau is None else float(self.tau),
                normalize=bool(self.ssgsea_norm),
            )
        if self.method == "zscore":
            return ZscoreParams()
        return PlageParams()


@dataclass(frozen=True)
class MappedGeneSet:
    """Gene set resolved to sorted unique row positions of the filtered matrix."""

    name: str
    indices: np.ndarray

    @property
    def size(self) -> int:
        return int(self.indices.size)


@dataclass(frozen=True)
class ScoreResult:
    """Output of `compute_scores`.

    - `scores`: gene sets (rows) x samples (columns).
    - `diagnostics`: constant genes, dropped gene sets and the parameters used.
    """

    scores: pd.DataFrame
    method: str
    params: MethodParams
    constant_genes: tuple[str, ...] = ()
    unmapped_gene_sets: tuple[str, ...] = ()
    size_filtered_gene_sets: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def diagnostics(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "n_constant_genes": len(self.constant_genes),
            "constant_genes": list(self.constant_genes),
            "unmapped_gene_sets": list(self.unmapped_gene_sets),
            "size_filtered_gene_sets": list(self.size_filtered_gene_sets),
            **self.metadata,
        }
