"""
Volume Builder
==============
Turns a shape selector or a mesh into a cubic occupancy grid.

The parametric shapes are reference fixtures: their thresholds are fixed and
tests rely on the exact cells they occupy.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional

import numpy as np

from calprojector.errors import ComputeSubstrateError, ConfigurationError, InvalidMeshError
from calprojector.model.geometry import Mesh, OccupancyGrid
from calprojector.model.state import ModelType

if TYPE_CHECKING:
    import numpy.typing as npt

    from calprojector.model.state import GenerationConfig, VolumeSource

logger = logging.getLogger(__name__)

# Gear
GEAR_TEETH = 8
GEAR_OUTER_RADIUS = 1.0 / 3.0
GEAR_INNER_RADIUS = 1.0 / 6.0
GEAR_HEIGHT = 0.6
GEAR_TOOTH_LAND = 1.0   # radius modifier on the first half of a tooth
GEAR_TOOTH_ROOT = 0.7   # ... and on the second half

# Cube and sphere, as fractions of N
CUBE_SIDE = 0.4
SPHERE_RADIUS = 0.3

# Mesh voxelizer: largest bounding-box extent maps to this fraction of N
MESH_FILL = 0.8


def _gear(n: int) -> npt.NDArray[np.float64]:
    model = np.zeros((n, n, n), dtype=np.float64)
    center = n / 2
    outer_radius = n * GEAR_OUTER_RADIUS
    inner_radius = n * GEAR_INNER_RADIUS
    height = n * GEAR_HEIGHT
    start_z = (n - height) / 2
    end_z = start_z + height

    # Planar footprint, identical for every slice of the band
    y, x = np.mgrid[0:n, 0:n].astype(np.float64)
    dx = x - center
    dy = y - center
    dist = np.sqrt(dx * dx + dy * dy)
    angle = np.arctan2(dy, dx)
    tooth_angle = (angle + math.pi) / (2 * math.pi) * GEAR_TEETH
    tooth_phase = tooth_angle - np.floor(tooth_angle)
    radius_mod = np.where(tooth_phase < 0.5, GEAR_TOOTH_LAND, GEAR_TOOTH_ROOT)
    effective_radius = inner_radius + (outer_radius - inner_radius) * radius_mod
    footprint = dist <= effective_radius

    model[math.floor(start_z):math.floor(end_z), footprint] = 1.0
    return model


def _cube(n: int) -> npt.NDArray[np.float64]:
    model = np.zeros((n, n, n), dtype=np.float64)
    cube_size = n * CUBE_SIDE
    start = (n - cube_size) / 2
    end = start + cube_size
    lo, hi = math.floor(start), math.floor(end)
    model[lo:hi, lo:hi, lo:hi] = 1.0
    return model


def _sphere(n: int) -> npt.NDArray[np.float64]:
    center = n / 2
    radius = n * SPHERE_RADIUS
    z, y, x = np.ogrid[0:n, 0:n, 0:n]
    dist = np.sqrt((x - center) ** 2 + (y - center) ** 2 + (z - center) ** 2)
    return (dist <= radius).astype(np.float64)


PARAMETRIC_MODELS = {
    ModelType.GEAR: _gear,
    ModelType.CUBE: _cube,
    ModelType.SPHERE: _sphere,
}


def build_parametric(model: ModelType | str, n: int) -> OccupancyGrid:
    """
    Synthesize one of the built-in fixtures.

    Args:
        model: "gear", "cube" or "sphere".
        n: Grid size N.

    Raises:
        ConfigurationError: The model has no parametric generator.
    """
    try:
        generator = PARAMETRIC_MODELS[ModelType(model)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"No parametric generator for model '{model}'.") from None

    logger.info(f"Generating '{model}' test model at {n}^3.")
    try:
        return OccupancyGrid(generator(n))
    except MemoryError as e:
        raise ComputeSubstrateError(f"Out of memory allocating a {n}^3 grid.") from e


def voxelize_mesh(mesh: Mesh, n: int) -> OccupancyGrid:
    """
    Point-sample a mesh into an N³ grid.

    The mesh is scaled uniformly so its largest extent spans 80% of the grid
    and centred per axis. Only vertices are marked; triangle interiors are not
    rasterized, so coarse meshes come out sparse.

    Raises:
        InvalidMeshError: No vertices, non-finite coordinates or zero extent.
    """
    vertices = mesh.vertices
    if len(vertices) == 0:
        raise InvalidMeshError("Mesh has no vertices.")
    if not np.all(np.isfinite(vertices)):
        raise InvalidMeshError("Mesh has non-finite vertex coordinates.")

    lower = vertices.min(axis=0)
    upper = vertices.max(axis=0)
    size = upper - lower
    largest = float(size.max())
    if largest <= 0.0:
        raise InvalidMeshError("Mesh bounding box has zero extent on every axis.")

    scale = (n * MESH_FILL) / largest
    offset = (n - size * scale) / 2
    cells = np.floor((vertices - lower) * scale + offset).astype(np.int64)
    inside = np.all((cells >= 0) & (cells < n), axis=1)

    try:
        voxels = np.zeros((n, n, n), dtype=np.float64)
    except MemoryError as e:
        raise ComputeSubstrateError(f"Out of memory allocating a {n}^3 grid.") from e
    kept = cells[inside]
    voxels[kept[:, 2], kept[:, 1], kept[:, 0]] = 1.0

    dropped = int(len(cells) - len(kept))
    if dropped:
        logger.debug(f"Dropped {dropped} vertices outside the grid.")
    logger.info(f"Voxelized {mesh.num_vertices} vertices into {n}^3 grid.")
    return OccupancyGrid(voxels)


def build_volume(config: GenerationConfig, source: Optional[VolumeSource] = None) -> OccupancyGrid:
    """
    Produce the occupancy grid for one run.

    Built-in models ignore ``source``. A custom run needs a Mesh (voxelized at
    the configured resolution) or an OccupancyGrid of matching size.
    """
    n = config.resolution
    if ModelType(config.model) != ModelType.CUSTOM:
        return build_parametric(config.model, n)

    if isinstance(source, Mesh):
        return voxelize_mesh(source, n)
    if isinstance(source, OccupancyGrid):
        if source.size != n:
            raise ConfigurationError(f"Supplied grid has size {source.size}, expected {n}.")
        return source
    raise ConfigurationError("Custom model needs a mesh or an occupancy grid.")
