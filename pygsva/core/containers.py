"""Adapters exposing expression containers through one narrow interface.

The scoring engine only ever sees an `ExpressionSource`: gene and sample
identifiers plus block reads returning dense float arrays oriented
genes x samples. Concrete container identity never leaks past `as_expression`.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

from pygsva.exceptions import DuplicateIdentifiers


def _dense(block: Any) -> np.ndarray:
    if sp.issparse(block):
        return np.asarray(block.toarray(), dtype=float)
    if hasattr(block, "to_memory"):
        # anndata backed sparse datasets hand back lazy objects
        block = block.to_memory()
        if sp.issparse(block):
            return np.asarray(block.toarray(), dtype=float)
    return np.asarray(block, dtype=float)


def _as_positions(idx: slice | np.ndarray | list[int], n: int) -> slice | np.ndarray:
    if isinstance(idx, slice):
        return idx
    arr = np.asarray(idx, dtype=np.int64).ravel()
    if arr.size and (arr.min() < 0 or arr.max() >= n):
        raise IndexError(f"positions out of bounds for axis of length {n}.")
    return arr


def _compose(base: np.ndarray | None, idx: slice | np.ndarray) -> slice | np.ndarray:
    """Translate view positions into positions of the underlying container."""
    if base is None:
        return idx
    return base[idx] if isinstance(idx, slice) else base[np.asarray(idx, dtype=np.int64)]


def _to_sorted_key(idx: slice | np.ndarray) -> tuple[slice | np.ndarray, np.ndarray | None]:
    """Return an increasing index (h5py-friendly) and the permutation undoing it."""
    if isinstance(idx, slice):
        return idx, None
    arr = np.asarray(idx, dtype=np.int64)
    if arr.size <= 1 or np.all(np.diff(arr) > 0):
        return arr, None
    uniq, inverse = np.unique(arr, return_inverse=True)
    return uniq, inverse


class ExpressionSource:
    """Genes x samples numeric matrix with row and column identifiers."""

    is_backed: bool = False

    def __init__(self, gene_ids: pd.Index, sample_ids: pd.Index, rows: np.ndarray | None = None):
        self._gene_ids = pd.Index(gene_ids).astype(str)
        self._sample_ids = pd.Index(sample_ids)
        self._rows = rows

    @property
    def gene_ids(self) -> pd.Index:
        return self._gene_ids

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def shape(self) -> tuple[int, int]:
        return int(self._gene_ids.size), int(self._sample_ids.size)

    @property
    def n_genes(self) -> int:
        return self.shape[0]

    @property
    def n_samples(self) -> int:
        return self.shape[1]

    def gene_block(self, rows: slice | np.ndarray) -> np.ndarray:
        """Dense (len(rows) x n_samples) block."""
        raise NotImplementedError

    def sample_block(
        self, cols: slice | np.ndarray, rows: slice | np.ndarray | None = None
    ) -> np.ndarray:
        """Dense (n_genes or len(rows) x len(cols)) block."""
        raise NotImplementedError

    def subset_genes(self, positions: np.ndarray) -> "ExpressionSource":
        pos = np.asarray(positions, dtype=np.int64).ravel()
        base = np.arange(self.n_genes, dtype=np.int64) if self._rows is None else self._rows
        view = self._view(base[pos])
        view._gene_ids = self._gene_ids[pos]
        return view

    def _view(self, rows: np.ndarray) -> "ExpressionSource":
        raise NotImplementedError

    def to_frame(self) -> pd.DataFrame:
        """Materialise the whole matrix; only meant for small inputs and tests."""
        return pd.DataFrame(
            self.gene_block(slice(None)), index=self.gene_ids, columns=self.sample_ids
        )

    def __repr__(self) -> str:
        n_g, n_s = self.shape
        return f"{type(self).__name__}(n_genes={n_g}, n_samples={n_s}, backed={self.is_backed})"


class ArrayExpression(ExpressionSource):
    """Dense, memory-mapped or scipy-sparse matrix oriented genes x samples."""

    def __init__(
        self,
        data: Any,
        gene_ids: pd.Index,
        sample_ids: pd.Index,
        rows: np.ndarray | None = None,
    ):
        if sp.issparse(data):
            data = sp.csr_matrix(data)
        elif not isinstance(data, np.ndarray):
            data = np.asarray(data, dtype=float)
        if data.ndim != 2:
            raise ValueError(f"expression data must be 2-D, got shape {data.shape}.")
        super().__init__(gene_ids, sample_ids, rows)
        self._data = data
        self.is_backed = isinstance(data, np.memmap)

    def _view(self, rows: np.ndarray) -> "ArrayExpression":
        return ArrayExpression(self._data, self._gene_ids, self._sample_ids, rows=rows)

    def gene_block(self, rows: slice | np.ndarray) -> np.ndarray:
        key = _compose(self._rows, _as_positions(rows, self.n_genes))
        return _dense(self._data[key])

    def sample_block(
        self, cols: slice | np.ndarray, rows: slice | np.ndarray | None = None
    ) -> np.ndarray:
        col_key = _as_positions(cols, self.n_samples)
        row_key = _compose(
            self._rows,
            slice(None) if rows is None else _as_positions(rows, self.n_genes),
        )
        # columns first so only the requested samples are copied
        return _dense(self._data[:, col_key][row_key])


class AnnDataExpression(ExpressionSource):
    """AnnData (obs = samples, var = genes), in memory or backed on disk.

    Backed objects are only ever read one block at a time.
    """

    def __init__(self, adata: Any, layer: str | None = None, rows: np.ndarray | None = None):
        if layer is not None and layer not in adata.layers:
            raise KeyError(f"adata.layers['{layer}'] not found.")
        super().__init__(adata.var_names, adata.obs_names, rows)
        self._adata = adata
        self._layer = layer
        self.is_backed = bool(getattr(adata, "isbacked", False))

    def _matrix(self) -> Any:
        if self._layer is None:
            return self._adata.X
        return self._adata.layers[self._layer]

    def _view(self, rows: np.ndarray) -> "AnnDataExpression":
        return AnnDataExpression(self._adata, layer=self._layer, rows=rows)

    def gene_block(self, rows: slice | np.ndarray) -> np.ndarray:
        key = _compose(self._rows, _as_positions(rows, self.n_genes))
        sorted_key, inverse = _to_sorted_key(key)
        block = _dense(self._matrix()[:, sorted_key]).T
        return block if inverse is None else block[inverse]

    def sample_block(
        self, cols: slice | np.ndarray, rows: slice | np.ndarray | None = None
    ) -> np.ndarray:
        col_key, col_inverse = _to_sorted_key(_as_positions(cols, self.n_samples))
        block = _dense(self._matrix()[col_key])
        if col_inverse is not None:
            block = block[col_inverse]
        row_key = _compose(
            self._rows,
            slice(None) if rows is None else _as_positions(rows, self.n_genes),
        )
        return np.ascontiguousarray(block[:, row_key].T)


def _check_unique(gene_ids: pd.Index) -> None:
    dup = gene_ids[gene_ids.duplicated()]
    if len(dup) > 0:
        raise DuplicateIdentifiers([str(x) for x in pd.unique(dup)])


def _default_labels(prefix: str, n: int) -> pd.Index:
    return pd.Index([f"{prefix}{i}" for i in range(n)])


def as_expression(
    expr: Any,
    *,
    gene_ids: Any = None,
    sample_ids: Any = None,
    layer: str | None = None,
) -> ExpressionSource:
    """Wrap a supported container as an `ExpressionSource`.

    Supported: `ExpressionSource`, `pandas.DataFrame` (index = genes),
    `anndata.AnnData` (var = genes, obs = samples; `layer` optional),
    `numpy.ndarray`/`numpy.memmap` and `scipy.sparse` matrices (genes x samples,
    labelled by `gene_ids`/`sample_ids` or `g0..`/`s0..`).
    """
    if isinstance(expr, ExpressionSource):
        return expr

    if isinstance(expr, pd.DataFrame):
        if gene_ids is not None or sample_ids is not None:
            raise ValueError("gene_ids/sample_ids are taken from the DataFrame labels.")
        numeric = expr.apply(pd.to_numeric, errors="coerce")
        source: ExpressionSource = ArrayExpression(
            numeric.to_numpy(dtype=float), expr.index, expr.columns
        )
    elif hasattr(expr, "obs_names") and hasattr(expr, "var_names") and hasattr(expr, "X"):
        source = AnnDataExpression(expr, layer=layer)
    elif sp.issparse(expr) or isinstance(expr, np.ndarray):
        n_g, n_s = expr.shape
        genes = _default_labels("g", n_g) if gene_ids is None else pd.Index(gene_ids)
        samples = _default_labels("s", n_s) if sample_ids is None else pd.Index(sample_ids)
        if genes.size != n_g or samples.size != n_s:
            raise ValueError(
                f"label lengths ({genes.size}, {samples.size}) do not match matrix shape {expr.shape}."
            )
        source = ArrayExpression(expr, genes, samples)
    else:
        raise TypeError(
            f"Unsupported expression container: {type(expr).__name__}. "
            "Use a DataFrame, AnnData, numpy array or scipy.sparse matrix."
        )

    _check_unique(source.gene_ids)
    return source
