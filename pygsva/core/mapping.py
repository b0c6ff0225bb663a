"""Resolution of gene-set members to expression row positions."""

from __future__ import annotations

import logging
import warnings
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from pygsva.core.types import MappedGeneSet
from pygsva.exceptions import EmptyGeneSetCollection, NoMappableIdentifiers

logger = logging.getLogger("pygsva")


def _iter_gene_sets(gene_sets: Any) -> Iterable[tuple[str, list[str]]]:
    if isinstance(gene_sets, pd.Series):
        items = gene_sets.items()
    elif isinstance(gene_sets, Mapping):
        items = gene_sets.items()
    else:
        raise TypeError(
            f"gene_sets must be a mapping of name -> genes, got {type(gene_sets).__name__}."
        )
    for name, members in items:
        if isinstance(members, str):
            raise TypeError(
                f"Gene set '{name}' must be a collection of identifiers, not a single string."
            )
        yield str(name), [str(g) for g in members]


def map_gene_sets(
    gene_sets: Mapping[str, Iterable[str]] | pd.Series,
    gene_ids: pd.Index | Iterable[str],
) -> tuple[list[MappedGeneSet], list[str]]:
    """Map member identifiers to row positions by exact string match.

    Returns the mapped sets in input order and the names of sets that mapped
    to no gene at all (dropped with a warning). Raises `NoMappableIdentifiers`
    if nothing maps.
    """
    index = pd.Index(gene_ids).astype(str)
    mapped: list[MappedGeneSet] = []
    empty: list[str] = []
    n_sets = 0
    for name, members in _iter_gene_sets(gene_sets):
        n_sets += 1
        pos = index.get_indexer(pd.Index(members, dtype=object)) if members else np.zeros(0, int)
        pos = np.unique(pos[pos >= 0]).astype(np.int64)
        if pos.size == 0:
            empty.append(name)
            continue
        mapped.append(MappedGeneSet(name=name, indices=pos))

    if not mapped:
        raise NoMappableIdentifiers(n_gene_sets=n_sets, n_genes=index.size)
    if empty:
        msg = f"{len(empty)} gene set(s) with no identifier in the expression data were dropped."
        warnings.warn(msg, RuntimeWarning, stacklevel=2)
        logger.warning("%s First: %s", msg, empty[0])
    return mapped, empty


def filter_gene_sets(
    mapped: list[MappedGeneSet],
    min_size: int = 1,
    max_size: int | None = None,
) -> tuple[list[MappedGeneSet], list[str]]:
    """Keep sets whose mapped size lies in the inclusive [min_size, max_size]."""
    lo = int(min_size)
    hi = np.inf if max_size is None else int(max_size)
    kept = [gs for gs in mapped if lo <= gs.size <= hi]
    dropped = [gs.name for gs in mapped if not (lo <= gs.size <= hi)]
    if not kept:
        raise EmptyGeneSetCollection(min_size=lo, max_size=max_size)
    return kept, dropped


def filter_gene_sets_by_size(
    gene_sets: Mapping[str, Iterable[str]],
    gene_ids: Iterable[str] | None = None,
    min_size: int = 1,
    max_size: int | None = None,
) -> dict[str, list[str]]:
    """Size-filter raw gene sets, optionally restricted to `gene_ids` first.

    Unlike `filter_gene_sets`, an empty result is returned rather than raised.
    """
    universe = None if gene_ids is None else set(str(g) for g in gene_ids)
    lo = int(min_size)
    hi = np.inf if max_size is None else int(max_size)
    out: dict[str, list[str]] = {}
    for name, members in _iter_gene_sets(gene_sets):
        uniq = list(dict.fromkeys(members))
        if universe is not None:
            uniq = [g for g in uniq if g in universe]
        if lo <= len(uniq) <= hi:
            out[name] = uniq
    return out


def compute_gene_sets_overlap(
    gene_sets: Mapping[str, Iterable[str]],
    gene_ids: Iterable[str] | None = None,
    min_size: int = 1,
    max_size: int | None = None,
) -> pd.DataFrame:
    """Pairwise overlap |A & B| / min(|A|, |B|) between gene sets."""
    kept = filter_gene_sets_by_size(gene_sets, gene_ids, min_size=min_size, max_size=max_size)
    names = list(kept)
    if not names:
        return pd.DataFrame(dtype=float)

    genes = pd.Index(sorted({g for members in kept.values() for g in members}))
    membership = np.zeros((len(names), genes.size), dtype=float)
    for i, name in enumerate(names):
        membership[i, genes.get_indexer(kept[name])] = 1.0

    shared = membership @ membership.T
    sizes = membership.sum(axis=1)
    denom = np.minimum.outer(sizes, sizes)
    return pd.DataFrame(shared / denom, index=names, columns=names)
