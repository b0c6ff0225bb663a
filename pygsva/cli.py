"""Command-line interface for gene-set scoring."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Iterable

from pygsva.config import config_from_mapping, load_json_config
from pygsva.core.compute import compute_scores
from pygsva.core.types import BACKENDS, KCDFS, METHODS
from pygsva.io import read_expression, read_gmt, write_scores
from pygsva.utils import setup_logger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pygsva", description="Per-sample gene-set enrichment scores"
    )
    parser.add_argument("--expr", required=True, help="Expression matrix (.h5ad, .tsv, .txt, .csv)")
    parser.add_argument("--gmt", required=True, help="Gene sets in GMT format")
    parser.add_argument("--out", required=True, help="Output TSV of gene sets x samples")
    parser.add_argument("--config", default=None, help="JSON config; flags override it")
    parser.add_argument("--method", choices=METHODS, default=None)
    parser.add_argument("--kcdf", choices=KCDFS, default=None)
    parser.add_argument("--tau", type=float, default=None)
    parser.add_argument("--min-size", type=int, default=None)
    parser.add_argument("--max-size", type=int, default=None)
    parser.add_argument("--no-mx-diff", action="store_true", help="Use the max-deviation score")
    parser.add_argument("--abs-ranking", action="store_true")
    parser.add_argument("--no-ssgsea-norm", action="store_true")
    parser.add_argument("--backend", choices=BACKENDS, default=None)
    parser.add_argument("--n-jobs", type=int, default=None)
    parser.add_argument("--chunk-size", type=int, default=None)
    parser.add_argument("--backed", action="store_true", help="Keep .h5ad input on disk")
    parser.add_argument("--layer", default=None, help="AnnData layer to score")
    parser.add_argument("--log", default=None, help="Optional log file")
    return parser


def _options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for key in ("method", "kcdf", "tau", "min_size", "max_size", "backend", "n_jobs", "chunk_size"):
        value = getattr(args, key)
        if value is not None:
            options[key] = value
    if args.no_mx_diff:
        options["mx_diff"] = False
    if args.abs_ranking:
        options["abs_ranking"] = True
    if args.no_ssgsea_norm:
        options["ssgsea_norm"] = False
    if args.backed:
        options["out_of_core"] = True
    return options


def main(argv: Iterable[str] | None = None) -> int:
    """Run scoring from the command line.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logger = setup_logger(Path(args.log) if args.log else None, "pygsva")

    base = config_from_mapping(load_json_config(args.config)) if args.config else None
    config = config_from_mapping(_options_from_args(args), base=base)

    expr = read_expression(args.expr, backed=args.backed)
    gene_sets = read_gmt(args.gmt)
    logger.info("Read %d gene sets from %s", len(gene_sets), args.gmt)

    result = compute_scores(expr, gene_sets, config, layer=args.layer)
    out = write_scores(result.scores, args.out)
    logger.info("Wrote %d x %d scores to %s", *result.scores.shape, out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
