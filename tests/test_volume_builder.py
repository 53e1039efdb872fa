import math

import numpy as np
import pytest

from calprojector.controller.volume_builder import build_parametric, build_volume, voxelize_mesh
from calprojector.errors import ConfigurationError, InvalidMeshError
from calprojector.model.geometry import Mesh, OccupancyGrid
from calprojector.model.state import GenerationConfig, ModelType


# ---------------------------------------------------------------------------
# Parametric fixtures
# ---------------------------------------------------------------------------


def test_cube_boundary_cells(cube_64):
    grid = cube_64.values
    assert cube_64.size == 64
    # start = 19.2, end = 44.8 -> indices 19..43 on every axis
    assert grid[19, 19, 19] == 1
    assert grid[43, 43, 43] == 1
    assert grid[19, 43, 31] == 1
    assert grid[18, 30, 30] == 0
    assert grid[30, 18, 30] == 0
    assert grid[30, 30, 44] == 0
    assert grid[44, 44, 44] == 0
    assert cube_64.occupied_count == 25 ** 3


def test_cube_matches_interval_on_each_axis(cube_64):
    lo, hi = math.floor((64 - 0.4 * 64) / 2), math.floor((64 - 0.4 * 64) / 2 + 0.4 * 64)
    axis = np.zeros(64, dtype=bool)
    axis[lo:hi] = True
    expected = axis[:, None, None] & axis[None, :, None] & axis[None, None, :]
    np.testing.assert_array_equal(cube_64.values.astype(bool), expected)


def test_sphere_center_and_corner():
    grid = build_parametric(ModelType.SPHERE, 64).values
    assert grid[32, 32, 32] == 1
    assert grid[0, 0, 0] == 0
    assert grid[63, 63, 63] == 0


def test_sphere_radius_threshold():
    grid = build_parametric("sphere", 64).values
    # 0.3 * 64 = 19.2 from the centre at 32
    assert grid[32, 32, 32 + 19] == 1
    assert grid[32, 32, 32 + 20] == 0
    assert grid[32, 32 - 19, 32] == 1
    assert grid[32 - 20, 32, 32] == 0


def test_gear_band_and_hub():
    grid = build_parametric("gear", 64).values
    # height 38.4 centred: z in [12, 51)
    assert grid[12, 32, 32] == 1
    assert grid[50, 32, 32] == 1
    assert grid[11, 32, 32] == 0
    assert grid[51, 32, 32] == 0
    # beyond the outer radius (64 / 3) nothing is solid
    assert not grid[:, 32, 32 + 22].any()


def test_gear_teeth_alternate():
    grid = build_parametric("gear", 64).values
    # distance 20 sits between the root radius (~18.1) and the tip radius (~21.3)
    assert grid[30, 32, 12] == 1   # angle pi, first half of a tooth
    assert grid[30, 21, 15] == 0   # phase ~0.73, second half of a tooth


def test_gear_slices_identical_in_band():
    grid = build_parametric("gear", 32).values
    band = grid[9:25]
    assert band.any()
    assert all(np.array_equal(band[0], s) for s in band)


def test_parametric_rejects_custom_and_unknown():
    with pytest.raises(ConfigurationError):
        build_parametric(ModelType.CUSTOM, 16)
    with pytest.raises(ConfigurationError):
        build_parametric("torus", 16)


def test_parametric_grid_is_read_only():
    grid = build_parametric("cube", 16)
    with pytest.raises(ValueError):
        grid.values[0, 0, 0] = 1.0


# ---------------------------------------------------------------------------
# Mesh voxelizer
# ---------------------------------------------------------------------------


def _unit_cube_mesh() -> Mesh:
    vertices = [[x, y, z] for z in (0.0, 1.0) for y in (0.0, 1.0) for x in (0.0, 1.0)]
    triangles = [[0, 1, 2], [1, 3, 2], [4, 5, 6], [5, 7, 6]]
    return Mesh(vertices=vertices, triangles=triangles)


def test_voxelize_marks_scaled_vertices():
    grid = voxelize_mesh(_unit_cube_mesh(), 10)
    # scale 8, offset 1: corners land on cells 1 and 9
    occupied = set(zip(*np.nonzero(grid.values)))
    expected = {(z, y, x) for z in (1, 9) for y in (1, 9) for x in (1, 9)}
    assert occupied == expected


def test_voxelize_only_points_not_faces():
    grid = voxelize_mesh(_unit_cube_mesh(), 10)
    assert grid.occupied_count == 8
    assert grid.values[5, 5, 1] == 0


def test_voxelize_centres_flat_axis():
    mesh = Mesh(vertices=[[0, 0, 0], [4, 0, 0], [0, 2, 0]], triangles=[[0, 1, 2]])
    grid = voxelize_mesh(mesh, 20)
    z, y, x = np.nonzero(grid.values)
    assert set(z) == {10}
    # y extent 2 * 4 = 8 centred -> offset 6
    assert set(y) == {6, 14}
    assert set(x) == {2, 18}


def test_voxelize_uses_largest_extent():
    mesh = Mesh(vertices=[[0, 0, 0], [10, 1, 1]])
    grid = voxelize_mesh(mesh, 10)
    assert grid.values[4, 4, 1] == 1
    assert grid.values[5, 5, 9] == 1


def test_voxelize_empty_mesh_raises():
    with pytest.raises(InvalidMeshError):
        voxelize_mesh(Mesh(vertices=np.empty((0, 3))), 16)


def test_voxelize_single_point_raises():
    mesh = Mesh(vertices=[[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]])
    with pytest.raises(InvalidMeshError):
        voxelize_mesh(mesh, 16)


def test_voxelize_non_finite_raises():
    with pytest.raises(InvalidMeshError):
        voxelize_mesh(Mesh(vertices=[[0, 0, 0], [np.nan, 1, 1]]), 16)


def test_mesh_rejects_bad_indices():
    with pytest.raises(InvalidMeshError):
        Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]], triangles=[[0, 1, 3]])
    with pytest.raises(InvalidMeshError):
        Mesh(vertices=[[0, 0], [1, 0]])


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_build_volume_parametric_ignores_source():
    grid = build_volume(GenerationConfig(resolution=16, projection_count=4, model=ModelType.SPHERE), _unit_cube_mesh())
    assert grid.occupied_count == build_parametric("sphere", 16).occupied_count


def test_build_volume_custom_mesh():
    config = GenerationConfig(resolution=10, projection_count=4, model=ModelType.CUSTOM)
    assert build_volume(config, _unit_cube_mesh()).occupied_count == 8


def test_build_volume_custom_grid_passthrough():
    grid = OccupancyGrid(np.zeros((16, 16, 16)))
    config = GenerationConfig(resolution=16, projection_count=4, model=ModelType.CUSTOM)
    assert build_volume(config, grid) is grid


def test_build_volume_custom_grid_size_mismatch():
    config = GenerationConfig(resolution=16, projection_count=4, model=ModelType.CUSTOM)
    with pytest.raises(ConfigurationError):
        build_volume(config, OccupancyGrid(np.zeros((8, 8, 8))))


def test_build_volume_custom_without_source():
    config = GenerationConfig(resolution=16, projection_count=4, model=ModelType.CUSTOM)
    with pytest.raises(ConfigurationError):
        build_volume(config)


def test_occupancy_grid_must_be_cubic():
    with pytest.raises(ValueError):
        OccupancyGrid(np.zeros((4, 4, 5)))
    with pytest.raises(ValueError):
        OccupancyGrid(np.zeros((4, 4)))


def test_occupancy_grid_does_not_freeze_caller_array():
    values = np.zeros((4, 4, 4))
    OccupancyGrid(values)
    values[0, 0, 0] = 1.0
