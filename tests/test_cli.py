from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pandas as pd

from pygsva import cli, gsva
from pygsva.io import write_gmt


def _write_inputs(tmp_path: Path) -> tuple[Path, Path, pd.DataFrame, dict[str, list[str]]]:
    rng = np.random.default_rng(0)
    expr = pd.DataFrame(
        rng.normal(size=(40, 5)),
        index=[f"G{i}" for i in range(40)],
        columns=[f"S{j}" for j in range(5)],
    )
    sets = {"a": [f"G{i}" for i in range(8)], "b": [f"G{i}" for i in range(10, 40, 3)]}
    expr_path = tmp_path / "expr.tsv"
    gmt_path = tmp_path / "sets.gmt"
    expr.to_csv(expr_path, sep="\t")
    write_gmt(sets, gmt_path)
    return expr_path, gmt_path, expr, sets


def test_cli_writes_scores(tmp_path: Path):
    expr_path, gmt_path, expr, sets = _write_inputs(tmp_path)
    out = tmp_path / "out" / "scores.tsv"
    log = tmp_path / "logs" / "run.log"
    rc = cli.main(
        ["--expr", str(expr_path), "--gmt", str(gmt_path), "--out", str(out),
         "--method", "zscore", "--log", str(log)]
    )
    assert rc == 0
    got = pd.read_csv(out, sep="\t", index_col=0)
    expected = gsva(expr, sets, method="zscore")
    assert list(got.index) == ["a", "b"]
    assert np.allclose(got.to_numpy(), expected.to_numpy(), atol=1e-6)
    assert "Read 2 gene sets" in log.read_text(encoding="utf-8")


def test_cli_flags_override_config(tmp_path: Path):
    expr_path, gmt_path, expr, sets = _write_inputs(tmp_path)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"method": "ssgsea", "min.sz": 9}), encoding="utf-8")
    out = tmp_path / "scores.tsv"
    rc = cli.main(
        ["--expr", str(expr_path), "--gmt", str(gmt_path), "--out", str(out),
         "--config", str(cfg), "--no-ssgsea-norm"]
    )
    assert rc == 0
    got = pd.read_csv(out, sep="\t", index_col=0)
    expected = gsva(expr, sets, method="ssgsea", ssgsea_norm=False, min_size=9)
    assert list(got.index) == ["b"]
    assert np.allclose(got.to_numpy(), expected.to_numpy(), rtol=1e-6)


def test_options_from_args():
    parser = cli._build_parser()
    args = parser.parse_args(
        ["--expr", "e.h5ad", "--gmt", "s.gmt", "--out", "o.tsv", "--no-mx-diff",
         "--abs-ranking", "--backend", "threading", "--n-jobs", "2", "--backed"]
    )
    assert cli._options_from_args(args) == {
        "backend": "threading",
        "n_jobs": 2,
        "mx_diff": False,
        "abs_ranking": True,
        "out_of_core": True,
    }
