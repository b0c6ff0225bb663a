"""Core scoring subpackage."""

from pygsva.core.compute import compute_scores, gsva
from pygsva.core.containers import (
    AnnDataExpression,
    ArrayExpression,
    ExpressionSource,
    as_expression,
)
from pygsva.core.filtering import filter_constant_rows, row_standard_deviations
from pygsva.core.mapping import (
    compute_gene_sets_overlap,
    filter_gene_sets,
    filter_gene_sets_by_size,
    map_gene_sets,
)
from pygsva.core.scheduler import ChunkScheduler, SequentialExecutor, make_chunks
from pygsva.core.types import (
    GSVAConfig,
    GsvaParams,
    MappedGeneSet,
    ParallelConfig,
    PlageParams,
    ScoreResult,
    SsgseaParams,
    ZscoreParams,
)

__all__ = [
    "GSVAConfig",
    "ParallelConfig",
    "GsvaParams",
    "SsgseaParams",
    "ZscoreParams",
    "PlageParams",
    "MappedGeneSet",
    "ScoreResult",
    "ExpressionSource",
    "ArrayExpression",
    "AnnDataExpression",
    "as_expression",
    "filter_constant_rows",
    "row_standard_deviations",
    "map_gene_sets",
    "filter_gene_sets",
    "filter_gene_sets_by_size",
    "compute_gene_sets_overlap",
    "ChunkScheduler",
    "SequentialExecutor",
    "make_chunks",
    "compute_scores",
    "gsva",
]
