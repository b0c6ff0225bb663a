"""Enrichment score calculators.

The random walk steps through a sample's ranking, moving up by the
normalised weight of each gene-set member and down by a uniform
1 / (P - k) for every other gene. Rather than materialising the full walk,
its extremes and its sum are computed from the member positions alone:
the walk peaks right after a hit and bottoms out right before one (or at
the end of the list), which makes each score O(k) per sample.
"""

from __future__ import annotations

import numpy as np

from pygsva.exceptions import GeneSetTooSmall


def _member_positions(
    ranks0: np.ndarray, weights: np.ndarray, members: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Sorted 0-based positions (k x m) of members and their aligned weights."""
    pos = ranks0[members]
    w = weights[members]
    order = np.argsort(pos, axis=0, kind="stable")
    return np.take_along_axis(pos, order, axis=0), np.take_along_axis(w, order, axis=0)


def _hit_steps(w: np.ndarray, tau: float) -> np.ndarray:
    steps = np.abs(w) ** float(tau)
    total = steps.sum(axis=0)
    norm = np.where(total > 0, total, 1.0)
    return steps / norm


def walk_extremes(
    positions: np.ndarray, hit_steps: np.ndarray, n_genes: int
) -> tuple[np.ndarray, np.ndarray]:
    """Maximum and minimum of the running sum (both include the start at 0).

    `positions` holds sorted 0-based ranks of the k members per column and
    `hit_steps` the matching normalised up-steps.
    """
    k = positions.shape[0]
    n_miss = int(n_genes) - k
    dec = 1.0 / n_miss if n_miss > 0 else 0.0
    cum_hits = np.cumsum(hit_steps, axis=0)
    misses = positions + 1 - np.arange(1, k + 1)[:, None]
    after_hit = cum_hits - misses * dec
    before_hit = (cum_hits - hit_steps) - misses * dec
    end = cum_hits[-1] - n_miss * dec
    max_pos = np.maximum(0.0, np.maximum(after_hit.max(axis=0), end))
    max_neg = np.minimum(0.0, np.minimum(before_hit.min(axis=0), end))
    return max_pos, max_neg


def walk_sum(positions: np.ndarray, hit_steps: np.ndarray, n_genes: int) -> np.ndarray:
    """Sum of the running walk over all P positions."""
    k = positions.shape[0]
    p = float(n_genes)
    n_miss = int(n_genes) - k
    dec = 1.0 / n_miss if n_miss > 0 else 0.0
    span = p - positions
    hits = np.sum(hit_steps * span, axis=0)
    misses = p * (p + 1.0) / 2.0 - span.sum(axis=0)
    return hits - dec * misses


def combine_extremes(
    max_pos: np.ndarray, max_neg: np.ndarray, mx_diff: bool = True, abs_ranking: bool = False
) -> np.ndarray:
    """Turn walk extremes into the enrichment score."""
    if mx_diff:
        return max_pos - max_neg if abs_ranking else max_pos + max_neg
    return np.where(max_pos > np.abs(max_neg), max_pos, max_neg)


def random_walk_scores(
    order: np.ndarray,
    weights: np.ndarray,
    gene_sets: list[np.ndarray],
    *,
    tau: float = 1.0,
    mx_diff: bool = True,
    abs_ranking: bool = False,
) -> np.ndarray:
    """Kolmogorov-Smirnov-like walk score for every gene set and column.

    - `order`: (P x m) row positions sorted by descending statistic.
    - `weights`: (P x m) rank weight of every gene, indexed by row position.
    - returns (n_sets x m).
    """
    n_genes, n_cols = order.shape
    ranks0 = np.empty_like(order)
    ranks0[order, np.arange(n_cols)[None, :]] = np.arange(n_genes)[:, None]
    out = np.empty((len(gene_sets), n_cols), dtype=float)
    for i, members in enumerate(gene_sets):
        pos, w = _member_positions(ranks0, weights, np.asarray(members, dtype=np.int64))
        max_pos, max_neg = walk_extremes(pos, _hit_steps(w, tau), n_genes)
        out[i] = combine_extremes(max_pos, max_neg, mx_diff=mx_diff, abs_ranking=abs_ranking)
    return out


def random_walk_score(
    statistic: np.ndarray,
    weights: np.ndarray,
    members: np.ndarray,
    *,
    tau: float = 1.0,
    mx_diff: bool = True,
    abs_ranking: bool = False,
) -> float:
    """Single-sample, single-set convenience wrapper around `random_walk_scores`."""
    stat = np.asarray(statistic, dtype=float).reshape(-1, 1)
    order = np.argsort(-stat, axis=0, kind="stable")
    res = random_walk_scores(
        order,
        np.asarray(weights, dtype=float).reshape(-1, 1),
        [np.asarray(members, dtype=np.int64)],
        tau=tau,
        mx_diff=mx_diff,
        abs_ranking=abs_ranking,
    )
    return float(res[0, 0])


def ssgsea_walk_scores(
    order: np.ndarray,
    ranks: np.ndarray,
    gene_sets: list[np.ndarray],
    *,
    tau: float = 0.25,
) -> np.ndarray:
    """Raw (unnormalised) ssGSEA scores: the summed walk, weights |rank|^tau."""
    n_genes, n_cols = order.shape
    ranks0 = np.empty_like(order)
    ranks0[order, np.arange(n_cols)[None, :]] = np.arange(n_genes)[:, None]
    out = np.empty((len(gene_sets), n_cols), dtype=float)
    for i, members in enumerate(gene_sets):
        pos, w = _member_positions(ranks0, ranks, np.asarray(members, dtype=np.int64))
        out[i] = walk_sum(pos, _hit_steps(w, tau), n_genes)
    return out


def normalize_ssgsea(scores: np.ndarray) -> np.ndarray:
    """Divide raw ssGSEA scores by their global range (max - min).

    Must be applied once, to the raw scores of the whole call.
    """
    arr = np.asarray(scores, dtype=float)
    finite = arr[np.isfinite(arr)]
    if finite.size == 0:
        raise ValueError("Cannot normalise ssGSEA scores: no finite values.")
    span = float(finite.max() - finite.min())
    if span <= 0.0:
        raise ValueError(
            "Cannot normalise ssGSEA scores: all raw scores are identical (zero range). "
            "Disable normalisation with ssgsea_norm=False."
        )
    return arr / span


def standardize_rows(
    block: np.ndarray, mean: np.ndarray | None = None, sd: np.ndarray | None = None
) -> np.ndarray:
    """Row-wise z-scores; `mean`/`sd` default to the block's own (ddof=1)."""
    x = np.asarray(block, dtype=float)
    mu = x.mean(axis=1) if mean is None else np.asarray(mean, dtype=float)
    s = x.std(axis=1, ddof=1) if sd is None else np.asarray(sd, dtype=float)
    return (x - mu[:, None]) / s[:, None]


def zscore_scores(z_block: np.ndarray, gene_sets: list[np.ndarray]) -> np.ndarray:
    """Combined z-score: sum of member z-scores over sqrt(k)."""
    z = np.asarray(z_block, dtype=float)
    out = np.empty((len(gene_sets), z.shape[1]), dtype=float)
    for i, members in enumerate(gene_sets):
        idx = np.asarray(members, dtype=np.int64)
        out[i] = z[idx].sum(axis=0) / np.sqrt(idx.size)
    return out


def plage_score(submatrix: np.ndarray, name: str = "gene set") -> np.ndarray:
    """First right-singular vector of the standardised member submatrix.

    The overall sign of a singular vector is arbitrary, so only relative
    values within a gene set (or |correlation| across runs) are meaningful.
    """
    x = np.asarray(submatrix, dtype=float)
    if x.ndim != 2 or x.shape[0] < 2:
        raise GeneSetTooSmall(name, 0 if x.ndim != 2 else x.shape[0])
    _, _, vt = np.linalg.svd(standardize_rows(x), full_matrices=False)
    return vt[0]


def plage_scores(submatrices: list[np.ndarray], names: list[str]) -> np.ndarray:
    return np.vstack([plage_score(sub, name) for sub, name in zip(submatrices, names)])
