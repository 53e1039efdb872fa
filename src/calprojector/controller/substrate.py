"""
Compute Substrates
==================
Backends that evaluate one scalar function over every cell of a square grid.

Why is this file needed?
------------------------
1. Parallelism: Projection pixels have no data dependency on each other, so a
   substrate may evaluate them in any order and on any number of workers.
2. Failure reporting: Running out of memory (or a backend failing to compile)
   must reach the pipeline as a ComputeSubstrateError, never as a grid of zeros.

Classes:
    ComputeSubstrate: Abstract backend.
    NumbaSubstrate: numba parallel loop (prange over rows).
    ThreadPoolSubstrate: concurrent.futures thread pool over rows.
"""
from __future__ import annotations

import concurrent.futures
import functools
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional

import numpy as np
import numba as nb
from numba.core.dispatcher import Dispatcher
from numba.core.errors import NumbaError

from calprojector.errors import ComputeSubstrateError

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

PixelFunction = Callable[..., float]


class ComputeSubstrate(ABC):
    """
    Abstract base class for compute substrates.
    """
    NAME: str = "substrate"

    @abstractmethod
    def run_parallel_2d(self, size: int, pixel_fn: PixelFunction, *args: Any) -> npt.NDArray[np.float64]:
        """
        Evaluate ``pixel_fn(u, v, *args)`` for every (u, v) in [0, size)².

        Args:
            size: Side length of the output grid.
            pixel_fn: Pure scalar function of the pixel coordinate and ``args``.
            *args: Read-only arguments shared by all pixels.

        Returns:
            (size, size) float64 array, ``out[v, u] = pixel_fn(u, v, *args)``.

        Raises:
            ComputeSubstrateError: The backend could not complete the grid.
        """
        pass


@functools.lru_cache(maxsize=None)
def _compile_grid(pixel_fn: Dispatcher) -> Dispatcher:
    """Build (once per pixel function) a parallel loop calling ``pixel_fn``."""

    @nb.njit(parallel=True)
    def grid(size, args):
        out = np.empty((size, size), dtype=np.float64)
        for v in nb.prange(size):
            for u in range(size):
                out[v, u] = pixel_fn(u, v, *args)
        return out

    return grid


class NumbaSubstrate(ComputeSubstrate):
    """
    Multithreaded CPU substrate built on numba's ``prange``.

    ``pixel_fn`` must be a numba-jitted function. The first call per pixel
    function compiles the loop; later calls reuse it.
    """
    NAME = "numba"

    def __init__(self, num_threads: Optional[int] = None) -> None:
        self.num_threads = num_threads

    def run_parallel_2d(self, size: int, pixel_fn: PixelFunction, *args: Any) -> npt.NDArray[np.float64]:
        if not isinstance(pixel_fn, Dispatcher):
            raise TypeError(f"{self.NAME} substrate needs a numba-jitted pixel function, got {pixel_fn!r}.")

        try:
            grid = _compile_grid(pixel_fn)
            if self.num_threads is not None:
                previous = nb.get_num_threads()
                nb.set_num_threads(self.num_threads)
                try:
                    return grid(size, args)
                finally:
                    nb.set_num_threads(previous)
            return grid(size, args)
        except MemoryError as e:
            logger.error(f"Out of memory evaluating a {size}x{size} grid: {e}")
            raise ComputeSubstrateError(f"Out of memory evaluating a {size}x{size} grid.") from e
        except NumbaError as e:
            logger.error(f"numba failed to run {getattr(pixel_fn, '__name__', pixel_fn)}: {e}")
            raise ComputeSubstrateError(f"numba failed: {e}") from e


class ThreadPoolSubstrate(ComputeSubstrate):
    """
    Row-parallel substrate on a thread pool.

    Accepts any Python callable. Jitted ``nogil`` functions run truly in
    parallel; plain Python functions are serialized by the GIL but still
    produce the same grid.
    """
    NAME = "threads"

    def __init__(self, max_workers: Optional[int] = None) -> None:
        self.max_workers = max_workers

    def run_parallel_2d(self, size: int, pixel_fn: PixelFunction, *args: Any) -> npt.NDArray[np.float64]:
        def evaluate_row(v: int) -> list[float]:
            return [pixel_fn(u, v, *args) for u in range(size)]

        try:
            out = np.empty((size, size), dtype=np.float64)
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                for v, row in enumerate(pool.map(evaluate_row, range(size))):
                    out[v, :] = row
            return out
        except MemoryError as e:
            logger.error(f"Out of memory evaluating a {size}x{size} grid: {e}")
            raise ComputeSubstrateError(f"Out of memory evaluating a {size}x{size} grid.") from e
        except (concurrent.futures.BrokenExecutor, RuntimeError) as e:
            # RuntimeError covers "can't start new thread"
            logger.error(f"Thread pool failed: {e}")
            raise ComputeSubstrateError(f"Thread pool failed: {e}") from e


SUBSTRATES: dict[str, type[ComputeSubstrate]] = {
    NumbaSubstrate.NAME: NumbaSubstrate,
    ThreadPoolSubstrate.NAME: ThreadPoolSubstrate,
}


def make_substrate(name: str) -> ComputeSubstrate:
    try:
        return SUBSTRATES[name]()
    except KeyError:
        raise ValueError(f"Unknown substrate '{name}'. Available: {sorted(SUBSTRATES)}") from None


@functools.lru_cache(maxsize=1)
def default_substrate() -> ComputeSubstrate:
    return NumbaSubstrate()
