from __future__ import annotations

import anndata as ad
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from pygsva.core.containers import AnnDataExpression, ArrayExpression, as_expression
from pygsva.exceptions import DuplicateIdentifiers


def _frame() -> pd.DataFrame:
    values = np.arange(20, dtype=float).reshape(5, 4)
    return pd.DataFrame(
        values,
        index=["A", "B", "C", "D", "E"],
        columns=["s1", "s2", "s3", "s4"],
    )


def test_dataframe_blocks_follow_labels():
    df = _frame()
    src = as_expression(df)
    assert isinstance(src, ArrayExpression)
    assert src.shape == (5, 4)
    assert list(src.gene_ids) == ["A", "B", "C", "D", "E"]
    assert list(src.sample_ids) == ["s1", "s2", "s3", "s4"]
    assert np.array_equal(src.gene_block(slice(1, 3)), df.to_numpy()[1:3])
    assert np.array_equal(src.sample_block(slice(2, 4)), df.to_numpy()[:, 2:4])
    assert np.array_equal(src.sample_block(np.array([3, 0])), df.to_numpy()[:, [3, 0]])


def test_subset_genes_is_a_relabelled_view():
    df = _frame()
    src = as_expression(df).subset_genes(np.array([0, 2, 4]))
    assert list(src.gene_ids) == ["A", "C", "E"]
    assert np.array_equal(src.gene_block(slice(None)), df.to_numpy()[[0, 2, 4]])
    assert np.array_equal(src.sample_block(slice(0, 2)), df.to_numpy()[[0, 2, 4]][:, :2])
    nested = src.subset_genes(np.array([1, 2]))
    assert list(nested.gene_ids) == ["C", "E"]
    assert np.array_equal(nested.gene_block(np.array([1])), df.to_numpy()[[4]])


def test_ndarray_gets_default_labels_and_sparse_matches_dense():
    x = np.array([[0.0, 1.0, 0.0], [2.0, 0.0, 3.0]])
    dense = as_expression(x)
    assert list(dense.gene_ids) == ["g0", "g1"]
    assert list(dense.sample_ids) == ["s0", "s1", "s2"]

    sparse = as_expression(sp.csc_matrix(x), gene_ids=["a", "b"], sample_ids=["x", "y", "z"])
    assert np.array_equal(sparse.gene_block(slice(None)), x)
    assert np.array_equal(sparse.sample_block(slice(1, 3)), x[:, 1:3])


def test_label_length_mismatch_rejected():
    with pytest.raises(ValueError, match="label lengths"):
        as_expression(np.zeros((2, 3)), gene_ids=["a"])


def test_duplicate_gene_ids_rejected():
    df = _frame()
    df.index = ["A", "B", "A", "D", "D"]
    with pytest.raises(DuplicateIdentifiers) as info:
        as_expression(df)
    assert info.value.duplicated == ["A", "D"]


def test_unsupported_container_rejected():
    with pytest.raises(TypeError, match="Unsupported expression container"):
        as_expression([[1.0, 2.0], [3.0, 4.0]])


def test_expression_source_passes_through():
    src = as_expression(_frame())
    assert as_expression(src) is src


def _adata(df: pd.DataFrame) -> ad.AnnData:
    return ad.AnnData(
        X=df.T.to_numpy(dtype=float),
        obs=pd.DataFrame(index=df.columns),
        var=pd.DataFrame(index=df.index),
    )


def test_anndata_is_transposed_to_genes_by_samples():
    df = _frame()
    adata = _adata(df)
    adata.layers["counts"] = adata.X * 2.0
    src = as_expression(adata)
    assert isinstance(src, AnnDataExpression)
    assert list(src.gene_ids) == list(df.index)
    assert list(src.sample_ids) == list(df.columns)
    assert np.array_equal(src.gene_block(slice(0, 2)), df.to_numpy()[:2])
    assert np.array_equal(src.sample_block(slice(1, 3)), df.to_numpy()[:, 1:3])

    counts = as_expression(adata, layer="counts")
    assert np.array_equal(counts.gene_block(np.array([4])), 2.0 * df.to_numpy()[[4]])

    with pytest.raises(KeyError, match="layers"):
        as_expression(adata, layer="missing")


def test_backed_anndata_reads_blocks(tmp_path):
    df = _frame()
    path = tmp_path / "expr.h5ad"
    _adata(df).write_h5ad(path)
    backed = ad.read_h5ad(path, backed="r")
    try:
        src = as_expression(backed)
        assert src.is_backed
        sub = src.subset_genes(np.array([1, 3]))
        assert np.array_equal(sub.gene_block(slice(None)), df.to_numpy()[[1, 3]])
        assert np.array_equal(sub.sample_block(slice(0, 2)), df.to_numpy()[[1, 3]][:, :2])
    finally:
        backed.file.close()
