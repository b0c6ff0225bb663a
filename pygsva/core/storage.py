"""Write-once holders for the per-call Statistic Matrix."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

import numpy as np

logger = logging.getLogger("pygsva")


class MatrixStore:
    """Genes x samples float matrix written by row blocks, read by column blocks.

    `disk=True` keeps the data in a `numpy.memmap` inside a private temporary
    directory that is removed on `close()`.
    """

    def __init__(self, shape: tuple[int, int], *, disk: bool = False, tmp_dir: str | None = None):
        self.shape = (int(shape[0]), int(shape[1]))
        self.disk = bool(disk)
        self._dir: Path | None = None
        self._written = np.zeros(self.shape[0], dtype=bool)
        if self.disk:
            self._dir = Path(tempfile.mkdtemp(prefix="pygsva-", dir=tmp_dir))
            path = self._dir / "statistic.f64"
            self._data = np.memmap(path, dtype=np.float64, mode="w+", shape=self.shape)
            logger.info("Statistic matrix %s backed by %s", self.shape, path)
        else:
            self._data = np.empty(self.shape, dtype=np.float64)

    def write_rows(self, rows: slice, values: np.ndarray) -> None:
        idx = np.arange(self.shape[0])[rows]
        if np.any(self._written[idx]):
            raise RuntimeError(f"rows {rows.start}:{rows.stop} of the statistic matrix were already written.")
        block = np.asarray(values, dtype=np.float64)
        if block.shape != (idx.size, self.shape[1]):
            raise ValueError(
                f"block shape {block.shape} does not match rows {rows.start}:{rows.stop} x {self.shape[1]}."
            )
        self._data[rows] = block
        self._written[idx] = True

    def read_columns(self, cols: slice) -> np.ndarray:
        if not self._written.all():
            raise RuntimeError("statistic matrix read before every row was written.")
        return np.array(self._data[:, cols], dtype=np.float64)

    def close(self) -> None:
        if self._dir is not None:
            if isinstance(self._data, np.memmap):
                self._data.flush()
            del self._data
            shutil.rmtree(self._dir, ignore_errors=True)
            self._dir = None

    def __enter__(self) -> "MatrixStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
