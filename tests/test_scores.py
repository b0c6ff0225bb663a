from __future__ import annotations

import numpy as np
import pytest

from pygsva.core.ranking import gsva_rank_scores, order_genes, ssgsea_ranks
from pygsva.core.scores import (
    combine_extremes,
    normalize_ssgsea,
    plage_score,
    plage_scores,
    random_walk_score,
    random_walk_scores,
    ssgsea_walk_scores,
    standardize_rows,
    zscore_scores,
)
from pygsva.exceptions import GeneSetTooSmall


def _reference_walk(order: np.ndarray, weights: np.ndarray, members, tau: float) -> np.ndarray:
    """Running sum over the full ranking, one step per gene."""
    members = set(int(m) for m in members)
    n = order.size
    n_miss = n - len(members)
    up = np.array([abs(weights[g]) ** tau for g in order if g in members], dtype=float)
    total = up.sum() if up.sum() > 0 else 1.0
    walk = np.empty(n, dtype=float)
    acc = 0.0
    for i, g in enumerate(order):
        if g in members:
            acc += abs(weights[g]) ** tau / total
        elif n_miss > 0:
            acc -= 1.0 / n_miss
        walk[i] = acc
    return walk


def test_walk_extremes_match_full_walk():
    rng = np.random.default_rng(0)
    stat = rng.normal(size=(40, 6))
    order = order_genes(stat)
    weights = gsva_rank_scores(order)
    sets = [np.array([0, 3, 7, 21]), np.arange(0, 40, 3), np.array([5]), np.arange(40)]
    for mx_diff in (True, False):
        for abs_ranking in (False, True):
            got = random_walk_scores(
                order, weights, sets, tau=1.0, mx_diff=mx_diff, abs_ranking=abs_ranking
            )
            for i, members in enumerate(sets):
                for j in range(6):
                    walk = _reference_walk(order[:, j], weights[:, j], members, 1.0)
                    max_pos = max(0.0, walk.max())
                    max_neg = min(0.0, walk.min())
                    if mx_diff:
                        expected = max_pos - max_neg if abs_ranking else max_pos + max_neg
                    else:
                        expected = max_pos if max_pos > abs(max_neg) else max_neg
                    assert got[i, j] == pytest.approx(expected, abs=1e-12)


def test_ssgsea_sum_matches_full_walk():
    rng = np.random.default_rng(1)
    expr = rng.normal(size=(30, 4))
    order = order_genes(expr)
    ranks = ssgsea_ranks(expr)
    sets = [np.array([1, 2, 3, 4, 5]), np.array([29, 0]), np.arange(30)]
    got = ssgsea_walk_scores(order, ranks, sets, tau=0.25)
    for i, members in enumerate(sets):
        for j in range(4):
            walk = _reference_walk(order[:, j], ranks[:, j], members, 0.25)
            assert got[i, j] == pytest.approx(walk.sum(), rel=1e-10, abs=1e-10)


def test_complement_flips_sign_with_constant_weights():
    rng = np.random.default_rng(2)
    stat = rng.normal(size=(20, 3))
    order = order_genes(stat)
    weights = np.ones_like(stat)
    members = np.array([0, 4, 9, 13, 17])
    complement = np.setdiff1d(np.arange(20), members)
    res = random_walk_scores(order, weights, [members, complement])
    assert np.allclose(res[0], -res[1])


def test_top_ranked_set_scores_one():
    stat = np.arange(10, 0, -1, dtype=float)
    weights = np.ones(10)
    assert random_walk_score(stat, weights, np.array([0, 1, 2])) == pytest.approx(1.0)
    assert random_walk_score(stat, weights, np.array([7, 8, 9])) == pytest.approx(-1.0)


def test_zero_total_weight_moves_only_down():
    stat = np.arange(6, 0, -1, dtype=float)
    weights = np.zeros(6)
    # members at the top carry zero weight: walk never rises, ends at -1
    score = random_walk_score(stat, weights, np.array([0, 1]), mx_diff=False)
    assert score == pytest.approx(-1.0)


def test_combine_extremes():
    pos = np.array([0.5, 0.2])
    neg = np.array([-0.1, -0.6])
    assert np.allclose(combine_extremes(pos, neg), [0.4, -0.4])
    assert np.allclose(combine_extremes(pos, neg, abs_ranking=True), [0.6, 0.8])
    assert np.allclose(combine_extremes(pos, neg, mx_diff=False), [0.5, -0.6])


def test_normalize_ssgsea_uses_global_range():
    raw = np.array([[1.0, 3.0], [-1.0, np.nan]])
    out = normalize_ssgsea(raw)
    assert np.allclose(out[0], [0.25, 0.75])
    assert out[1, 0] == pytest.approx(-0.25)
    assert np.isnan(out[1, 1])
    with pytest.raises(ValueError, match="zero range"):
        normalize_ssgsea(np.full((2, 2), 0.3))


def test_zscore_combines_member_zscores():
    rng = np.random.default_rng(3)
    x = rng.normal(size=(5, 8))
    z = standardize_rows(x)
    assert np.allclose(z.mean(axis=1), 0.0)
    assert np.allclose(z.std(axis=1, ddof=1), 1.0)
    res = zscore_scores(z, [np.array([2]), np.array([0, 1, 4])])
    assert np.allclose(res[0], z[2])
    assert np.allclose(res[1], (z[0] + z[1] + z[4]) / np.sqrt(3))


def test_plage_recovers_shared_sample_profile():
    profile = np.array([0.0, 1.0, 4.0, 2.0, -1.0, 3.0])
    scale = np.array([[1.0], [2.5], [0.3]])
    sub = scale * profile + np.array([[5.0], [-2.0], [1.0]])
    score = plage_score(sub)
    centred = profile - profile.mean()
    expected = centred / np.linalg.norm(centred)
    assert np.linalg.norm(score) == pytest.approx(1.0)
    assert np.allclose(np.abs(score @ expected), 1.0)


def test_negated_submatrix_flips_every_plage_score_together():
    rng = np.random.default_rng(5)
    sub = rng.normal(size=(6, 11))
    a = plage_score(sub)
    b = plage_score(-sub)
    assert np.allclose(np.abs(a), np.abs(b))
    ratio = a / b
    assert np.allclose(ratio, ratio[0])
    assert abs(ratio[0]) == pytest.approx(1.0)


def test_plage_sign_is_arbitrary_but_magnitude_stable():
    rng = np.random.default_rng(4)
    sub = rng.normal(size=(4, 9))
    a = plage_score(sub)
    b = plage_score(sub[::-1])
    assert np.allclose(np.abs(a), np.abs(b))


def test_plage_needs_two_genes():
    with pytest.raises(GeneSetTooSmall, match="'tiny' has 1 mapped gene"):
        plage_score(np.ones((1, 5)), "tiny")
    with pytest.raises(GeneSetTooSmall):
        plage_scores([np.arange(12.0).reshape(3, 4) ** 2, np.ones((1, 4))], ["ok", "bad"])
