"""
Geometry Data Structures
========================
Plain containers passed between the pipeline stages.

Classes:
    OccupancyGrid: Read-only cubic volume of occupancy values.
    Mesh: Triangle soup handed over by the mesh ingestion step.
    Projection: One angle and its 2D intensity image.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from calprojector.errors import InvalidMeshError

if TYPE_CHECKING:
    import numpy.typing as npt


@dataclass(frozen=True, eq=False)
class OccupancyGrid:
    """
    Cubic occupancy volume indexed as ``values[z, y, x]``.

    Cell values are in [0, 1]. The built-in generators only produce 0/1, but
    the projection kernel interpolates fractional values as well.
    """
    values: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        values = np.ascontiguousarray(self.values, dtype=np.float64)
        if values.ndim != 3:
            raise ValueError(f"Occupancy grid must be 3D, got shape {values.shape}.")
        if not (values.shape[0] == values.shape[1] == values.shape[2]):
            raise ValueError(f"Occupancy grid must be cubic, got shape {values.shape}.")
        if values is self.values:
            values = values.copy()
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def size(self) -> int:
        """Side length N."""
        return self.values.shape[0]

    @property
    def occupied_count(self) -> int:
        return int(np.count_nonzero(self.values))


@dataclass(eq=False)
class Mesh:
    """
    Triangle mesh as produced by the ingestion step.

    Args:
        vertices: (V, 3) vertex positions.
        triangles: (T, 3) vertex indices, each valid into ``vertices``.
    """
    vertices: npt.NDArray[np.float64]
    triangles: npt.NDArray[np.int64] = field(default_factory=lambda: np.empty((0, 3), dtype=np.int64))

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices, dtype=np.float64)
        triangles = np.asarray(self.triangles, dtype=np.int64)
        if vertices.size == 0:
            vertices = vertices.reshape(0, 3)
        if triangles.size == 0:
            triangles = triangles.reshape(0, 3)

        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise InvalidMeshError(f"Vertices must have shape (V, 3), got {vertices.shape}.")
        if triangles.ndim != 2 or triangles.shape[1] != 3:
            raise InvalidMeshError(f"Triangles must have shape (T, 3), got {triangles.shape}.")
        if triangles.size and (triangles.min() < 0 or triangles.max() >= len(vertices)):
            raise InvalidMeshError(
                f"Triangle indices must lie in [0, {len(vertices)}), "
                f"got [{triangles.min()}, {triangles.max()}]."
            )

        self.vertices = vertices
        self.triangles = triangles

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_triangles(self) -> int:
        return len(self.triangles)


@dataclass(eq=False)
class Projection:
    """
    A single projection image.

    ``data`` is indexed ``[v, u]``. It holds raw line integrals (float64) until
    the normalizer rescales it, once, to uint8 intensities.
    """
    angle: float
    data: npt.NDArray
    normalized: bool = False

    @property
    def size(self) -> int:
        return self.data.shape[0]


# Ordered by ascending angle, which is also generation order
ProjectionSet = list[Projection]
