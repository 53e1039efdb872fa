# kernel.py
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional

import numpy as np
import numba as nb

if TYPE_CHECKING:
    import numpy.typing as npt

    from calprojector.controller.substrate import ComputeSubstrate
    from calprojector.model.geometry import OccupancyGrid

logger = logging.getLogger(__name__)

# Ray half-length as a fraction of N; covers the volume diagonal at any angle
RAY_EXTENT = 0.7
# Marching step in voxels, also the Riemann-sum weight of every sample
STEP_SIZE = 0.5


@nb.njit(cache=True, nogil=True)
def trilinear(volume: npt.NDArray[np.float64], x: float, y: float, z: float) -> float:
    """
    Trilinear interpolation of ``volume[z, y, x]`` at a non-integer position.

    The caller guarantees 0 <= x, y, z < N - 1, so all 8 corners are in range.
    Corners are named c{dz}{dy}{dx}; interpolation runs along x, then y, then z.
    """
    x0 = int(math.floor(x))
    y0 = int(math.floor(y))
    z0 = int(math.floor(z))
    dx = x - x0
    dy = y - y0
    dz = z - z0

    c000 = volume[z0, y0, x0]
    c100 = volume[z0, y0, x0 + 1]
    c010 = volume[z0, y0 + 1, x0]
    c110 = volume[z0, y0 + 1, x0 + 1]
    c001 = volume[z0 + 1, y0, x0]
    c101 = volume[z0 + 1, y0, x0 + 1]
    c011 = volume[z0 + 1, y0 + 1, x0]
    c111 = volume[z0 + 1, y0 + 1, x0 + 1]

    c00 = c000 * (1.0 - dx) + c100 * dx
    c01 = c001 * (1.0 - dx) + c101 * dx
    c10 = c010 * (1.0 - dx) + c110 * dx
    c11 = c011 * (1.0 - dx) + c111 * dx

    c0 = c00 * (1.0 - dy) + c10 * dy
    c1 = c01 * (1.0 - dy) + c11 * dy

    return c0 * (1.0 - dz) + c1 * dz


@nb.njit(cache=True, nogil=True)
def ray_integral(u: int, v: int, volume: npt.NDArray[np.float64], angle_deg: float, n: int) -> float:
    """
    Line integral of the volume through output pixel (u, v) at one angle.

    The ray lies in the plane y = v and is rotated about the y axis by the
    angle. Samples outside [0, N - 1) on any axis contribute nothing.

    Args:
        u: Pixel column.
        v: Pixel row.
        volume: (N, N, N) occupancy values indexed [z, y, x].
        angle_deg: Rotation angle in degrees.
        n: Grid size N.

    Returns:
        Raw projection value (voxel units).
    """
    angle_rad = angle_deg * (math.pi / 180.0)
    cos_theta = math.cos(angle_rad)
    sin_theta = math.sin(angle_rad)
    center = n / 2.0
    u_centered = u - center
    v_centered = v - center
    upper = n - 1.0

    line_integral = 0.0
    t = -n * RAY_EXTENT
    t_end = n * RAY_EXTENT
    while t < t_end:
        x = u_centered * cos_theta - t * sin_theta + center
        y = v_centered + center
        z = u_centered * sin_theta + t * cos_theta + center
        if 0.0 <= x < upper and 0.0 <= y < upper and 0.0 <= z < upper:
            line_integral += trilinear(volume, x, y, z) * STEP_SIZE
        t += STEP_SIZE
    return line_integral


def fold_angle(angle_deg: float) -> float:
    """Map any angle onto [0, 360)."""
    folded = math.fmod(float(angle_deg), 360.0)
    if folded < 0.0:
        folded += 360.0
    # -1e-20 % 360 would otherwise land on 360.0
    return 0.0 if folded >= 360.0 else folded


def project(
    volume: OccupancyGrid,
    angle_deg: float,
    substrate: Optional[ComputeSubstrate] = None,
) -> npt.NDArray[np.float64]:
    """
    Raw projection of ``volume`` at ``angle_deg``.

    Every pixel is an independent call of :func:`ray_integral`, evaluated by
    the compute substrate.

    Returns:
        (N, N) array indexed [v, u].

    Raises:
        ComputeSubstrateError: The substrate failed to evaluate the grid.
    """
    if substrate is None:
        from calprojector.controller.substrate import default_substrate
        substrate = default_substrate()

    n = volume.size
    angle = fold_angle(angle_deg)
    logger.debug(f"Projecting {n}x{n} at {angle:.3f} deg on {substrate.NAME}")
    return substrate.run_parallel_2d(n, ray_integral, volume.values, angle, n)
