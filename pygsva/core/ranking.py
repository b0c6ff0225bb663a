"""Per-sample gene rankings."""

from __future__ import annotations

import numpy as np


def order_genes(block: np.ndarray) -> np.ndarray:
    """Row positions of each column sorted by descending value.

    Ties keep their original row order (stable sort), so identical inputs
    always give identical rankings.
    """
    x = np.asarray(block, dtype=float)
    if x.ndim != 2:
        raise ValueError(f"block must be 2-D (genes x samples), got shape {x.shape}.")
    return np.argsort(-x, axis=0, kind="stable")


def ranks_from_order(order: np.ndarray) -> np.ndarray:
    """1-based descending rank of every gene; rank 1 is the top of the list."""
    n_genes, n_cols = order.shape
    ranks = np.empty_like(order)
    cols = np.arange(n_cols)[None, :]
    ranks[order, cols] = np.arange(1, n_genes + 1)[:, None]
    return ranks


def gsva_rank_scores(order: np.ndarray) -> np.ndarray:
    """Symmetric rank weights |P - r + 1 - P/2| for descending rank r.

    Both ends of the ranking weigh most, the middle close to zero, so a set
    concentrated at either extreme moves the walk.
    """
    n_genes = order.shape[0]
    rev = np.abs(np.arange(n_genes, 0, -1, dtype=float) - n_genes / 2.0)
    scores = np.empty(order.shape, dtype=float)
    cols = np.arange(order.shape[1])[None, :]
    scores[order, cols] = rev[:, None]
    return scores


def ssgsea_ranks(block: np.ndarray) -> np.ndarray:
    """Ascending integer ranks 1..P per column; the highest value gets P."""
    order = order_genes(block)
    n_genes = order.shape[0]
    return (n_genes + 1 - ranks_from_order(order)).astype(float)
