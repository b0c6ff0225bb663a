"""Readers and writers for gene sets, expression matrices and scores."""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from pygsva.utils import ensure_dir

TEXT_SUFFIXES = {".tsv": "\t", ".txt": "\t", ".csv": ","}


def read_gmt(path: str | Path) -> dict[str, list[str]]:
    """Read a GMT file: `name <TAB> description <TAB> gene ...` per line.

    Blank lines are skipped, duplicated members are collapsed and a repeated
    gene-set name keeps its first occurrence (with a warning).
    """
    gmt_path = Path(path)
    if not gmt_path.exists():
        raise FileNotFoundError(f"GMT file not found: {gmt_path}")

    out: dict[str, list[str]] = {}
    duplicated: list[str] = []
    with open(gmt_path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            fields = [f.strip() for f in line.rstrip("\r\n").split("\t")]
            if not any(fields):
                continue
            if len(fields) < 2 or fields[0] == "":
                raise ValueError(f"Malformed GMT line {lineno} in '{gmt_path}': expected name and description.")
            name = fields[0]
            if name in out:
                duplicated.append(name)
                continue
            out[name] = list(dict.fromkeys(g for g in fields[2:] if g != ""))

    if duplicated:
        warnings.warn(
            f"{len(duplicated)} duplicated gene set name(s) in '{gmt_path}'; first occurrence kept.",
            RuntimeWarning,
            stacklevel=2,
        )
    return out


def write_gmt(
    gene_sets: Mapping[str, Iterable[str]],
    path: str | Path,
    descriptions: Mapping[str, str] | None = None,
) -> None:
    out = Path(path)
    ensure_dir(out.parent)
    desc = descriptions or {}
    with out.open("w", encoding="utf-8") as fh:
        for name, genes in gene_sets.items():
            fh.write("\t".join([str(name), str(desc.get(name, "")), *map(str, genes)]) + "\n")


def read_expression(path: str | Path, *, backed: bool = False) -> Any:
    """Load a genes x samples matrix.

    `.h5ad` files are read with anndata (optionally backed, i.e. left on
    disk); delimited text uses the first column as gene identifiers.
    """
    expr_path = Path(path)
    if not expr_path.exists():
        raise FileNotFoundError(f"Expression file not found: {expr_path}")
    suffix = expr_path.suffix.lower()
    if suffix == ".h5ad":
        import anndata as ad

        return ad.read_h5ad(expr_path, backed="r" if backed else None)
    if suffix in TEXT_SUFFIXES:
        if backed:
            raise ValueError("backed mode is only available for .h5ad input.")
        return pd.read_csv(expr_path, sep=TEXT_SUFFIXES[suffix], index_col=0)
    raise ValueError(
        f"Unsupported expression format '{suffix}' for '{expr_path}'. "
        f"Use .h5ad or one of {sorted(TEXT_SUFFIXES)}."
    )


def write_scores(scores: pd.DataFrame, path: str | Path) -> Path:
    """Write a gene sets x samples score matrix as tab-separated text."""
    out = Path(path)
    ensure_dir(out.parent)
    scores.to_csv(out, sep="\t", index=True, index_label="gene_set", float_format="%.8g")
    return out
