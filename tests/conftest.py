from __future__ import annotations

import numpy as np
import pytest

from calprojector.controller.substrate import ComputeSubstrate, NumbaSubstrate, ThreadPoolSubstrate
from calprojector.controller.volume_builder import build_parametric
from calprojector.errors import ComputeSubstrateError
from calprojector.model.geometry import OccupancyGrid


class FailingSubstrate(ComputeSubstrate):
    """Evaluates ``succeed`` grids, then reports resource exhaustion."""
    NAME = "failing"

    def __init__(self, succeed: int = 0) -> None:
        self.succeed = succeed
        self.calls = 0

    def run_parallel_2d(self, size, pixel_fn, *args):
        self.calls += 1
        if self.calls > self.succeed:
            raise ComputeSubstrateError("device lost: out of memory")
        return np.ones((size, size), dtype=np.float64)


@pytest.fixture
def numba_substrate() -> NumbaSubstrate:
    return NumbaSubstrate()


@pytest.fixture
def thread_substrate() -> ThreadPoolSubstrate:
    return ThreadPoolSubstrate(max_workers=4)


@pytest.fixture
def cube_64() -> OccupancyGrid:
    return build_parametric("cube", 64)


@pytest.fixture
def small_sphere() -> OccupancyGrid:
    return build_parametric("sphere", 16)


@pytest.fixture
def ones_8() -> OccupancyGrid:
    return OccupancyGrid(np.ones((8, 8, 8)))
