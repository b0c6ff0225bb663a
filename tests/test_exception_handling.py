from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import pytest

from pygsva import exceptions
from pygsva.core import compute
from pygsva.core.compute import compute_scores
from pygsva.core.containers import ArrayExpression


def _expression() -> pd.DataFrame:
    rng = np.random.default_rng(0)
    return pd.DataFrame(
        rng.normal(size=(30, 6)),
        index=[f"G{i}" for i in range(30)],
        columns=[f"S{j}" for j in range(6)],
    )


def test_errors_share_a_base_and_builtin_parents():
    for cls in (
        exceptions.NoMappableIdentifiers,
        exceptions.EmptyGeneSetCollection,
        exceptions.GeneSetTooSmall,
        exceptions.DuplicateIdentifiers,
    ):
        assert issubclass(cls, exceptions.GSVAError)
        assert issubclass(cls, ValueError)
    assert issubclass(exceptions.ExecutorUnavailable, RuntimeError)
    assert issubclass(exceptions.ChunkExecutionError, RuntimeError)
    assert issubclass(exceptions.ConstantRowsDetected, RuntimeWarning)


def test_worker_failure_is_wrapped_with_chunk(monkeypatch):
    def _raise(*_args, **_kwargs):
        raise FloatingPointError("overflow in walk")

    monkeypatch.setattr(compute, "ssgsea_walk_scores", _raise)
    with pytest.raises(exceptions.ChunkExecutionError, match="samples\\[0:6\\]") as info:
        compute_scores(_expression(), {"a": ["G1", "G2", "G3"]}, method="ssgsea")
    assert isinstance(info.value.__cause__, FloatingPointError)


def test_unexpected_loader_error_propagates(monkeypatch):
    def _raise(*_args, **_kwargs):
        raise MemoryError("block too large")

    monkeypatch.setattr(ArrayExpression, "sample_block", _raise)
    with pytest.raises(MemoryError, match="block too large"):
        compute_scores(_expression(), {"a": ["G1", "G2", "G3"]}, method="zscore")


def test_unmapped_sets_warn_and_log(caplog):
    caplog.set_level(logging.WARNING, logger="pygsva")
    with pytest.warns(RuntimeWarning, match="1 gene set"):
        res = compute_scores(_expression(), {"a": ["G1", "G2"], "gone": ["X"]}, method="zscore")
    assert res.unmapped_gene_sets == ("gone",)
    assert "First: gone" in caplog.text


def test_constant_rows_are_logged(caplog):
    caplog.set_level(logging.WARNING, logger="pygsva")
    expr = _expression()
    expr.loc["G5"] = 1.0
    with pytest.warns(exceptions.ConstantRowsDetected):
        compute_scores(expr, {"a": ["G1", "G2"]})
    assert "1 genes with constant expression" in caplog.text


def test_duplicate_gene_ids_fail_early():
    expr = _expression()
    expr.index = ["G0"] * 2 + [f"G{i}" for i in range(2, 30)]
    with pytest.raises(exceptions.DuplicateIdentifiers, match="G0"):
        compute_scores(expr, {"a": ["G1", "G2"]})


def test_bad_config_type_rejected():
    with pytest.raises(TypeError, match="GSVAConfig or mapping"):
        compute_scores(_expression(), {"a": ["G1", "G2"]}, config=["gsva"])
