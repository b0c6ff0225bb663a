"""Gene-set score computation (no plotting, no filesystem I/O).

Every fatal condition (unmappable identifiers, empty collection, gene sets
too small for PLAGE) is raised before the scheduler dispatches any unit of
work, so a call either returns a complete Score Matrix or nothing.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Iterable, Mapping

import numpy as np
import pandas as pd

from pygsva.core.containers import ExpressionSource, as_expression
from pygsva.core.filtering import filter_constant_rows, row_moments
from pygsva.core.kcdf import transform_expression
from pygsva.core.mapping import filter_gene_sets, map_gene_sets
from pygsva.core.ranking import gsva_rank_scores, order_genes, ssgsea_ranks
from pygsva.core.scheduler import ChunkScheduler
from pygsva.core.scores import (
    normalize_ssgsea,
    plage_scores,
    random_walk_scores,
    ssgsea_walk_scores,
    zscore_scores,
)
from pygsva.core.storage import MatrixStore
from pygsva.core.types import (
    GSVAConfig,
    GsvaParams,
    MappedGeneSet,
    MethodParams,
    ParallelConfig,
    PlageParams,
    ScoreResult,
    SsgseaParams,
    ZscoreParams,
    method_name,
)
from pygsva.exceptions import GeneSetTooSmall

logger = logging.getLogger("pygsva")

# dense cells materialised per sample chunk when no chunk size is configured
BLOCK_CELLS = 1 << 22


def _samples_per_chunk(n_genes: int) -> int:
    return max(1, BLOCK_CELLS // max(1, int(n_genes)))


def _gsva_chunk(
    stat_block: np.ndarray,
    gene_sets: list[np.ndarray],
    tau: float,
    mx_diff: bool,
    abs_ranking: bool,
) -> np.ndarray:
    order = order_genes(stat_block)
    return random_walk_scores(
        order,
        gsva_rank_scores(order),
        gene_sets,
        tau=tau,
        mx_diff=mx_diff,
        abs_ranking=abs_ranking,
    )


def _ssgsea_chunk(expr_block: np.ndarray, gene_sets: list[np.ndarray], tau: float) -> np.ndarray:
    return ssgsea_walk_scores(order_genes(expr_block), ssgsea_ranks(expr_block), gene_sets, tau=tau)


def _zscore_chunk(
    expr_block: np.ndarray,
    mean: np.ndarray,
    sd: np.ndarray,
    gene_sets: list[np.ndarray],
) -> np.ndarray:
    z = (expr_block - mean[:, None]) / sd[:, None]
    return zscore_scores(z, gene_sets)


def _plage_chunk(payload: tuple[list[np.ndarray], list[str]]) -> np.ndarray:
    submatrices, names = payload
    return plage_scores(submatrices, names)


def _score_gsva(
    source: ExpressionSource,
    gene_sets: list[MappedGeneSet],
    params: GsvaParams,
    scheduler: ChunkScheduler,
    parallel: ParallelConfig,
) -> np.ndarray:
    n_genes, n_samples = source.shape
    out = np.empty((len(gene_sets), n_samples), dtype=float)
    disk = bool(parallel.out_of_core or source.is_backed)
    with MatrixStore(source.shape, disk=disk, tmp_dir=parallel.tmp_dir) as store:
        transform_expression(source, params.kcdf, scheduler, store)
        work = partial(
            _gsva_chunk,
            gene_sets=[gs.indices for gs in gene_sets],
            tau=params.tau,
            mx_diff=params.mx_diff,
            abs_ranking=params.abs_ranking,
        )
        chunks = scheduler.chunks(n_samples, default_size=_samples_per_chunk(n_genes))
        for chunk, res in scheduler.map_chunks(store.read_columns, work, chunks):
            out[:, chunk] = res
    return out


def _score_ssgsea(
    source: ExpressionSource,
    gene_sets: list[MappedGeneSet],
    params: SsgseaParams,
    scheduler: ChunkScheduler,
    parallel: ParallelConfig,
) -> np.ndarray:
    n_genes, n_samples = source.shape
    out = np.empty((len(gene_sets), n_samples), dtype=float)
    work = partial(_ssgsea_chunk, gene_sets=[gs.indices for gs in gene_sets], tau=params.tau)
    chunks = scheduler.chunks(n_samples, default_size=_samples_per_chunk(n_genes))
    for chunk, res in scheduler.map_chunks(source.sample_block, work, chunks):
        out[:, chunk] = res
    if params.normalize:
        logger.info("Normalizing ssGSEA scores by their global range")
        out = normalize_ssgsea(out)
    return out


def _score_zscore(
    source: ExpressionSource,
    gene_sets: list[MappedGeneSet],
    params: ZscoreParams,
    scheduler: ChunkScheduler,
    parallel: ParallelConfig,
) -> np.ndarray:
    # only genes belonging to some set are ever read again
    union = np.unique(np.concatenate([gs.indices for gs in gene_sets]))
    members = source.subset_genes(union)
    mean, sd = row_moments(members)
    local = [np.searchsorted(union, gs.indices) for gs in gene_sets]
    work = partial(_zscore_chunk, mean=mean, sd=sd, gene_sets=local)
    n_samples = source.n_samples
    out = np.empty((len(gene_sets), n_samples), dtype=float)
    chunks = scheduler.chunks(n_samples, default_size=_samples_per_chunk(union.size))
    for chunk, res in scheduler.map_chunks(members.sample_block, work, chunks):
        out[:, chunk] = res
    return out


def _score_plage(
    source: ExpressionSource,
    gene_sets: list[MappedGeneSet],
    params: PlageParams,
    scheduler: ChunkScheduler,
    parallel: ParallelConfig,
) -> np.ndarray:
    def _load(chunk: slice) -> tuple[list[np.ndarray], list[str]]:
        selected = gene_sets[chunk]
        return [source.gene_block(gs.indices) for gs in selected], [gs.name for gs in selected]

    out = np.empty((len(gene_sets), source.n_samples), dtype=float)
    chunks = scheduler.chunks(len(gene_sets))
    for chunk, res in scheduler.map_chunks(_load, _plage_chunk, chunks, axis="gene sets"):
        out[chunk, :] = res
    return out


_DISPATCH: dict[type, Callable[..., np.ndarray]] = {
    GsvaParams: _score_gsva,
    SsgseaParams: _score_ssgsea,
    ZscoreParams: _score_zscore,
    PlageParams: _score_plage,
}


def _resolve_config(config: GSVAConfig | Mapping[str, Any] | None, options: dict[str, Any]) -> GSVAConfig:
    # pygsva.config imports this subpackage's types; import lazily to avoid a cycle
    from pygsva.config import config_from_mapping

    if config is None:
        cfg = GSVAConfig()
    elif isinstance(config, GSVAConfig):
        cfg = config
    elif isinstance(config, Mapping):
        cfg = config_from_mapping(config)
    else:
        raise TypeError(f"config must be a GSVAConfig or mapping, got {type(config).__name__}.")
    if options:
        cfg = config_from_mapping(options, base=cfg)
    return cfg


def _check_plage_sizes(gene_sets: list[MappedGeneSet]) -> None:
    for gs in gene_sets:
        if gs.size < 2:
            raise GeneSetTooSmall(gs.name, gs.size)


def compute_scores(
    expr: Any,
    gene_sets: Mapping[str, Iterable[str]] | pd.Series,
    config: GSVAConfig | Mapping[str, Any] | None = None,
    *,
    executor: Any = None,
    layer: str | None = None,
    gene_ids: Any = None,
    sample_ids: Any = None,
    **options: Any,
) -> ScoreResult:
    """Score every gene set in every sample.

    Args:
        expr: genes x samples container (DataFrame, AnnData, ndarray, sparse).
        gene_sets: mapping of gene-set name to member identifiers.
        config: `GSVAConfig` or plain mapping of options.
        executor: object with `submit(fn, *args)`; overrides the parallel backend.
        layer: AnnData layer to score instead of `X`.
        gene_ids: row labels when `expr` is an unlabelled array.
        sample_ids: column labels when `expr` is an unlabelled array.
        **options: individual overrides, e.g. `method="ssgsea"`, `min_size=10`.

    Returns:
        `ScoreResult` holding the gene sets x samples DataFrame and diagnostics.
    """
    cfg = _resolve_config(config, options)
    params: MethodParams = cfg.method_params()
    method = method_name(params)

    source = as_expression(expr, gene_ids=gene_ids, sample_ids=sample_ids, layer=layer)
    logger.info("Input expression: %d genes x %d samples", *source.shape)

    filtered = filter_constant_rows(source, method)
    mapped, unmapped = map_gene_sets(gene_sets, filtered.source.gene_ids)
    kept, size_dropped = filter_gene_sets(mapped, cfg.min_size, cfg.max_size)
    if size_dropped:
        logger.info(
            "%d gene set(s) outside size bounds [%d, %s] dropped",
            len(size_dropped), cfg.min_size, "inf" if cfg.max_size is None else cfg.max_size,
        )
    if isinstance(params, PlageParams):
        _check_plage_sizes(kept)

    logger.info("Estimating %s scores for %d gene sets", method, len(kept))
    with ChunkScheduler(cfg.parallel, executor=executor) as scheduler:
        values = _DISPATCH[type(params)](filtered.source, kept, params, scheduler, cfg.parallel)

    scores = pd.DataFrame(
        values,
        index=pd.Index([gs.name for gs in kept]),
        columns=source.sample_ids,
    )
    return ScoreResult(
        scores=scores,
        method=method,
        params=params,
        constant_genes=filtered.constant_genes,
        unmapped_gene_sets=tuple(unmapped),
        size_filtered_gene_sets=tuple(size_dropped),
        metadata={
            "n_genes_input": int(source.n_genes),
            "n_genes_used": int(filtered.source.n_genes),
            "n_samples": int(source.n_samples),
            "n_gene_sets": int(len(kept)),
            "gene_set_sizes": {gs.name: gs.size for gs in kept},
        },
    )


def _to_anndata(scores: pd.DataFrame, like: Any):
    import anndata as ad

    obs = like.obs.copy() if hasattr(like, "obs") else pd.DataFrame(index=scores.columns)
    return ad.AnnData(
        X=scores.T.to_numpy(dtype=float),
        obs=obs,
        var=pd.DataFrame(index=scores.index.astype(str)),
    )


def gsva(
    expr: Any,
    gene_sets: Mapping[str, Iterable[str]] | pd.Series,
    config: GSVAConfig | Mapping[str, Any] | None = None,
    *,
    executor: Any = None,
    as_anndata: bool = False,
    **options: Any,
):
    """Gene set x sample score matrix as a DataFrame.

    With `as_anndata=True` an AnnData is returned instead (obs = samples,
    var = gene sets), carrying over `obs` when `expr` is itself an AnnData.
    """
    result = compute_scores(expr, gene_sets, config, executor=executor, **options)
    if as_anndata:
        return _to_anndata(result.scores, expr)
    return result.scores
