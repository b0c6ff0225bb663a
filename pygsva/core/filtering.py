"""Removal of genes with constant expression before scoring."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import numpy as np

from pygsva.core.containers import ExpressionSource
from pygsva.exceptions import ConstantRowsDetected

logger = logging.getLogger("pygsva")

DEFAULT_BLOCK_SIZE = 2048


@dataclass(frozen=True)
class FilterResult:
    source: ExpressionSource
    constant_genes: tuple[str, ...]
    removed: bool


def row_moments(
    source: ExpressionSource, block_size: int = DEFAULT_BLOCK_SIZE
) -> tuple[np.ndarray, np.ndarray]:
    """Mean and sample SD (ddof=1) of every gene across samples.

    Read block by block. A row holding any missing or infinite value has an
    undefined (NaN) mean and SD, as does a row with fewer than two samples.
    """
    n_genes = source.n_genes
    mean = np.full(n_genes, np.nan, dtype=float)
    sd = np.full(n_genes, np.nan, dtype=float)
    step = max(1, int(block_size))
    for start in range(0, n_genes, step):
        stop = min(n_genes, start + step)
        block = source.gene_block(slice(start, stop))
        incomplete = ~np.all(np.isfinite(block), axis=1)
        with warnings.catch_warnings():
            # rows with missing values or a single sample warn on reduction
            warnings.simplefilter("ignore", RuntimeWarning)
            block_mean = np.mean(block, axis=1)
            block_sd = np.std(block, axis=1, ddof=1)
            flat = np.max(block, axis=1) == np.min(block, axis=1)
        # rounding in the mean must not turn identical values into a tiny SD
        block_sd[flat] = 0.0
        block_sd[incomplete | (block.shape[1] < 2)] = np.nan
        block_mean[incomplete] = np.nan
        mean[start:stop] = block_mean
        sd[start:stop] = block_sd
    return mean, sd


def row_standard_deviations(
    source: ExpressionSource, block_size: int = DEFAULT_BLOCK_SIZE
) -> np.ndarray:
    return row_moments(source, block_size=block_size)[1]


def filter_constant_rows(
    source: ExpressionSource,
    method: str,
    *,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> FilterResult:
    """Drop genes whose SD is zero or undefined (e.g. any missing value), except for ssGSEA.

    ssGSEA only needs within-sample rank order, so constant genes are kept
    for it; a `ConstantRowsDetected` warning is issued in every case.
    """
    sd = row_standard_deviations(source, block_size=block_size)
    constant = ~(np.isfinite(sd) & (sd > 0))
    n_constant = int(constant.sum())
    constant_ids = tuple(str(g) for g in source.gene_ids[constant])

    if n_constant == 0:
        filtered, removed = source, False
    else:
        msg = f"{n_constant} genes with constant expression values throughout the samples."
        if method != "ssgsea":
            msg += f" Since method='{method}', genes with constant expression values are discarded."
        warnings.warn(msg, ConstantRowsDetected, stacklevel=2)
        logger.warning(msg)
        if method == "ssgsea":
            filtered, removed = source, False
        else:
            filtered, removed = source.subset_genes(np.flatnonzero(~constant)), True

    if filtered.n_genes < 2:
        raise ValueError(
            f"Less than two genes in the input expression data after filtering ({filtered.n_genes})."
        )
    return FilterResult(source=filtered, constant_genes=constant_ids, removed=removed)
