from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from calprojector.errors import ComputeSubstrateError
from calprojector.model.geometry import Projection

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

MAX_INTENSITY = 255


def global_range(projections: Sequence[Projection]) -> tuple[float, float]:
    """Minimum and maximum raw value over every pixel of every projection."""
    global_min = np.inf
    global_max = -np.inf
    for projection in projections:
        global_min = min(global_min, float(projection.data.min()))
        global_max = max(global_max, float(projection.data.max()))
    return global_min, global_max


def _rescale(data: npt.NDArray, global_min: float, value_range: float) -> npt.NDArray[np.uint8]:
    # round half up, then clamp away floating excursions
    scaled = np.floor((data - global_min) / value_range * MAX_INTENSITY + 0.5)
    return np.clip(scaled, 0, MAX_INTENSITY).astype(np.uint8)


def normalize_projections(projections: Sequence[Projection]) -> None:
    """
    Rescale a complete projection set to 8-bit intensities, in place.

    The scale depends on the extremum of the whole set, so this runs once,
    after every angle has been generated. A set whose values are all equal
    maps to 0.

    Args:
        projections: Raw projections; each ``data`` is replaced by a uint8 array.

    Raises:
        ValueError: A projection was already normalized.
        ComputeSubstrateError: Not enough memory for the 8-bit images.
    """
    if not projections:
        return
    for projection in projections:
        if projection.normalized:
            raise ValueError(f"Projection at {projection.angle} deg is already normalized.")

    global_min, global_max = global_range(projections)
    value_range = global_max - global_min
    if value_range == 0:
        value_range = 1.0
    logger.debug(f"Normalizing {len(projections)} projections, raw range [{global_min}, {global_max}]")

    # Every image is rescaled before any is replaced, so a failure leaves the set raw
    try:
        rescaled = [_rescale(projection.data, global_min, value_range) for projection in projections]
    except MemoryError as e:
        logger.error(f"Out of memory normalizing {len(projections)} projections: {e}")
        raise ComputeSubstrateError(f"Out of memory normalizing {len(projections)} projections.") from e

    for projection, data in zip(projections, rescaled):
        projection.data = data
        projection.normalized = True
