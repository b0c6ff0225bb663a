"""Error and warning taxonomy for gene-set scoring."""

from __future__ import annotations


class GSVAError(Exception):
    """Base class for fatal scoring errors."""


class NoMappableIdentifiers(GSVAError, ValueError):
    """No gene-set member matched any expression row identifier."""

    def __init__(self, n_gene_sets: int, n_genes: int):
        self.n_gene_sets = int(n_gene_sets)
        self.n_genes = int(n_genes)
        super().__init__(
            "No identifiers in the gene sets could be matched to the identifiers "
            f"in the expression data ({self.n_gene_sets} gene sets, {self.n_genes} genes). "
            "Check that both inputs use the same gene nomenclature."
        )


class EmptyGeneSetCollection(GSVAError, ValueError):
    """No gene set survived the size filter."""

    def __init__(self, min_size: int, max_size: int | None):
        self.min_size = int(min_size)
        self.max_size = max_size
        upper = "inf" if max_size is None else str(int(max_size))
        super().__init__(
            f"The gene set collection is empty after keeping sets with size in "
            f"[{self.min_size}, {upper}]."
        )


class GeneSetTooSmall(GSVAError, ValueError):
    """A gene set is too small for the requested method."""

    def __init__(self, name: str, size: int, required: int = 2):
        self.name = str(name)
        self.size = int(size)
        self.required = int(required)
        super().__init__(
            f"Gene set '{self.name}' has {self.size} mapped gene(s); "
            f"at least {self.required} are required."
        )


class DuplicateIdentifiers(GSVAError, ValueError):
    """Expression row identifiers are not unique."""

    def __init__(self, duplicated: list[str]):
        self.duplicated = list(duplicated)
        head = ", ".join(self.duplicated[:5])
        more = "..." if len(self.duplicated) > 5 else ""
        super().__init__(
            f"{len(self.duplicated)} duplicated gene identifier(s) in the expression data: {head}{more}"
        )


class ExecutorUnavailable(GSVAError, RuntimeError):
    """The requested parallel backend could not be created."""


class ChunkExecutionError(GSVAError, RuntimeError):
    """A unit of work failed inside the executor."""

    def __init__(self, chunk: slice, axis: str, cause: BaseException):
        self.chunk = chunk
        self.axis = str(axis)
        super().__init__(
            f"Chunk {axis}[{chunk.start}:{chunk.stop}] failed: {type(cause).__name__}: {cause}"
        )


class ConstantRowsDetected(RuntimeWarning):
    """Genes with zero or undefined standard deviation were found."""
