from __future__ import annotations

import numpy as np

from pygsva.core.ranking import gsva_rank_scores, order_genes, ranks_from_order, ssgsea_ranks


def test_order_is_descending_and_stable_on_ties():
    block = np.array([[1.0], [3.0], [3.0], [0.5]])
    order = order_genes(block)
    assert order[:, 0].tolist() == [1, 2, 0, 3]
    assert ranks_from_order(order)[:, 0].tolist() == [3, 1, 2, 4]


def test_gsva_rank_scores_are_symmetric_around_the_middle():
    block = np.array([[4.0], [3.0], [2.0], [1.0]])
    scores = gsva_rank_scores(order_genes(block))
    # descending ranks 1..4 with P=4: |4 - r + 1 - 2|
    assert scores[:, 0].tolist() == [2.0, 1.0, 0.0, 1.0]


def test_ssgsea_ranks_give_highest_value_rank_p():
    rng = np.random.default_rng(0)
    block = rng.normal(size=(6, 3))
    ranks = ssgsea_ranks(block)
    for j in range(3):
        assert ranks[np.argmax(block[:, j]), j] == 6
        assert ranks[np.argmin(block[:, j]), j] == 1
        assert sorted(ranks[:, j].tolist()) == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]
