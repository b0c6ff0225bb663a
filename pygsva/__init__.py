"""pygsva public API."""

from pygsva._version import __version__
from pygsva.config import config_from_mapping, load_config
from pygsva.core.compute import compute_scores, gsva
from pygsva.core.containers import as_expression
from pygsva.core.mapping import compute_gene_sets_overlap, filter_gene_sets_by_size
from pygsva.core.types import GSVAConfig, ParallelConfig, ScoreResult
from pygsva.exceptions import (
    ChunkExecutionError,
    ConstantRowsDetected,
    DuplicateIdentifiers,
    EmptyGeneSetCollection,
    ExecutorUnavailable,
    GeneSetTooSmall,
    GSVAError,
    NoMappableIdentifiers,
)

__all__ = [
    "__version__",
    "gsva",
    "compute_scores",
    "as_expression",
    "compute_gene_sets_overlap",
    "filter_gene_sets_by_size",
    "GSVAConfig",
    "ParallelConfig",
    "ScoreResult",
    "config_from_mapping",
    "load_config",
    "GSVAError",
    "NoMappableIdentifiers",
    "EmptyGeneSetCollection",
    "GeneSetTooSmall",
    "DuplicateIdentifiers",
    "ExecutorUnavailable",
    "ChunkExecutionError",
    "ConstantRowsDetected",
]
