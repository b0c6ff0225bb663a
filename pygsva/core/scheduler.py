"""Chunked dispatch of independent scoring units to an executor.

Any object with `submit(fn, *args) -> future` whose futures expose
`.result()` can drive the scheduler: `concurrent.futures` executors, the
joblib/loky reusable executor, or a distributed client. Each chunk is loaded
in the calling process only when it is about to be submitted, and at most
`max_pending` chunks are in flight, which bounds how much of an out-of-core
matrix is materialised at once.
"""

from __future__ import annotations

import logging
import math
import multiprocessing as mp
from collections import deque
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any, Callable, Iterator, TypeVar

from pygsva.core.types import ParallelConfig
from pygsva.exceptions import ChunkExecutionError, ExecutorUnavailable

logger = logging.getLogger("pygsva")

T = TypeVar("T")
R = TypeVar("R")

CHUNKS_PER_WORKER = 4
# assumed parallelism of an injected executor that does not report its size
INJECTED_WORKERS = 4


class SequentialExecutor:
    """Runs each submitted unit immediately in the calling thread."""

    def submit(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        return None


def make_chunks(
    n: int,
    chunk_size: int | None = None,
    n_jobs: int = 1,
    default_size: int | None = None,
) -> list[slice]:
    """Contiguous, disjoint slices covering `range(n)`."""
    n_i = int(n)
    if n_i <= 0:
        return []
    if chunk_size is not None:
        size = int(chunk_size)
    elif int(n_jobs) > 1:
        size = math.ceil(n_i / (CHUNKS_PER_WORKER * int(n_jobs)))
    elif default_size is not None:
        size = int(default_size)
    else:
        size = n_i
    size = max(1, min(size, n_i))
    return [slice(start, min(n_i, start + size)) for start in range(0, n_i, size)]


def resolve_executor(config: ParallelConfig, executor: Any = None) -> tuple[Any, bool]:
    """Return `(executor, owned)`; owned executors are shut down by the scheduler."""
    if executor is not None:
        if not callable(getattr(executor, "submit", None)):
            raise ExecutorUnavailable(
                f"Executor of type {type(executor).__name__} has no callable submit()."
            )
        return executor, False

    backend = config.backend
    n_jobs = int(config.n_jobs)
    if backend == "sequential":
        return SequentialExecutor(), True
    if backend == "threading":
        return ThreadPoolExecutor(max_workers=n_jobs), True
    if backend == "loky":
        try:
            from joblib.externals.loky import get_reusable_executor
        except ImportError as exc:
            raise ExecutorUnavailable(
                "backend='loky' requires joblib; install it or choose another backend."
            ) from exc
        # reusable executors are shared process-wide, never shut down here
        return get_reusable_executor(max_workers=n_jobs), False
    if backend == "multiprocessing":
        try:
            return ProcessPoolExecutor(max_workers=n_jobs, mp_context=mp.get_context("spawn")), True
        except (OSError, ValueError, NotImplementedError) as exc:
            raise ExecutorUnavailable(f"Could not start a process pool: {exc}") from exc
    raise ExecutorUnavailable(f"Unknown parallel backend '{backend}'.")


def _injected_workers(executor: Any, n_jobs: int) -> int:
    """Worker count for a caller-supplied executor.

    An explicit `n_jobs > 1` wins; otherwise the pool size reported by
    `concurrent.futures` and loky executors, falling back to
    `INJECTED_WORKERS` for clients that do not expose one.
    """
    if n_jobs > 1:
        return n_jobs
    reported = getattr(executor, "_max_workers", None)
    if isinstance(reported, int) and reported >= 1:
        return reported
    return INJECTED_WORKERS


class ChunkScheduler:
    """Partition an axis into chunks and run them through an executor."""

    def __init__(self, config: ParallelConfig | None = None, executor: Any = None):
        self.config = config or ParallelConfig()
        self.executor, self._owned = resolve_executor(self.config, executor)
        if executor is not None:
            self.n_workers = _injected_workers(executor, int(self.config.n_jobs))
        elif self.config.backend == "sequential":
            self.n_workers = 1
        else:
            self.n_workers = int(self.config.n_jobs)
        if self.config.max_pending is not None:
            self.max_pending = int(self.config.max_pending)
        else:
            self.max_pending = 1 if self.n_workers == 1 else 2 * self.n_workers

    def chunks(self, n: int, default_size: int | None = None) -> list[slice]:
        return make_chunks(
            n,
            chunk_size=self.config.chunk_size,
            n_jobs=self.n_workers,
            default_size=default_size,
        )

    def _submit(self, work: Callable[[T], R], data: T) -> Any:
        try:
            return self.executor.submit(work, data)
        except RuntimeError as exc:
            # shut-down or broken pools refuse new work with RuntimeError
            raise ExecutorUnavailable(f"Executor refused work: {exc}") from exc

    def map_chunks(
        self,
        load: Callable[[slice], T],
        work: Callable[[T], R],
        chunks: list[slice],
        *,
        axis: str = "samples",
    ) -> Iterator[tuple[slice, R]]:
        """Yield `(chunk, work(load(chunk)))` in chunk order.

        A chunk's result is yielded only once its unit has completed; a failed
        unit raises `ChunkExecutionError` and cancels what is still queued.
        """
        logger.info(
            "Dispatching %d %s chunk(s) to %s (max %d in flight)",
            len(chunks), axis, type(self.executor).__name__, self.max_pending,
        )
        pending: deque[tuple[slice, Any]] = deque()

        def _collect() -> tuple[slice, R]:
            chunk, future = pending.popleft()
            try:
                return chunk, future.result()
            except Exception as exc:
                for _, other in pending:
                    other.cancel()
                pending.clear()
                raise ChunkExecutionError(chunk, axis, exc) from exc

        for chunk in chunks:
            pending.append((chunk, self._submit(work, load(chunk))))
            while len(pending) >= self.max_pending:
                yield _collect()
        while pending:
            yield _collect()

    def close(self) -> None:
        if self._owned:
            self.executor.shutdown(wait=True)
            self._owned = False

    def __enter__(self) -> "ChunkScheduler":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
