import numpy as np
import pytest

from calprojector.controller.kernel import fold_angle, project, ray_integral
from calprojector.controller.substrate import (
    NumbaSubstrate,
    ThreadPoolSubstrate,
    default_substrate,
    make_substrate,
)
from calprojector.errors import ComputeSubstrateError
from calprojector.model.geometry import OccupancyGrid


def test_empty_volume_projects_to_zero(numba_substrate):
    volume = OccupancyGrid(np.zeros((16, 16, 16)))
    out = project(volume, 37.5, substrate=numba_substrate)
    assert out.shape == (16, 16)
    assert not out.any()


def test_full_volume_line_integral(ones_8, numba_substrate):
    # 14 samples inside [0, 7) along the ray, each weighted 0.5
    for angle in (0.0, 90.0):
        out = project(ones_8, angle, substrate=numba_substrate)
        assert out[3, 3] == pytest.approx(7.0)


def test_fractional_occupancy_scales_integral(numba_substrate):
    volume = OccupancyGrid(np.full((8, 8, 8), 0.5))
    out = project(volume, 0.0, substrate=numba_substrate)
    assert out[3, 3] == pytest.approx(3.5)


def test_last_column_falls_outside_sampling_bounds(ones_8, numba_substrate):
    out = project(ones_8, 0.0, substrate=numba_substrate)
    # x = N - 1 is excluded so the 8 interpolation corners stay in range
    assert not out[:, 7].any()
    assert not out[7, :].any()


def test_projection_is_deterministic(small_sphere, numba_substrate):
    first = project(small_sphere, 123.0, substrate=numba_substrate)
    second = project(small_sphere, 123.0, substrate=numba_substrate)
    np.testing.assert_array_equal(first, second)


def test_substrates_agree(small_sphere, numba_substrate, thread_substrate):
    numba_out = project(small_sphere, 45.0, substrate=numba_substrate)
    thread_out = project(small_sphere, 45.0, substrate=thread_substrate)
    np.testing.assert_allclose(numba_out, thread_out, rtol=0, atol=1e-9)


def test_project_uses_default_substrate(small_sphere):
    assert isinstance(default_substrate(), NumbaSubstrate)
    np.testing.assert_allclose(
        project(small_sphere, 10.0),
        project(small_sphere, 10.0, substrate=ThreadPoolSubstrate()),
        atol=1e-9,
    )


def test_half_turn_mirrors_image(cube_64, numba_substrate):
    proj0 = project(cube_64, 0.0, substrate=numba_substrate)
    proj180 = project(cube_64, 180.0, substrate=numba_substrate)
    # Rays at 180 deg cross column u at x = N - u, the mirror about the centre
    np.testing.assert_allclose(proj180[:, 1:], proj0[:, :0:-1], atol=1e-6)
    np.testing.assert_allclose(proj180.sum(axis=1), proj0.sum(axis=1), atol=1e-6)
    assert proj180.sum() == pytest.approx(proj0.sum())


def test_out_of_range_angles_fold(small_sphere, numba_substrate):
    np.testing.assert_allclose(
        project(small_sphere, 370.0, substrate=numba_substrate),
        project(small_sphere, 10.0, substrate=numba_substrate),
        atol=1e-9,
    )


@pytest.mark.parametrize(
    "angle, expected",
    [(0.0, 0.0), (10.0, 10.0), (360.0, 0.0), (370.0, 10.0), (-90.0, 270.0), (-720.0, 0.0)],
)
def test_fold_angle(angle, expected):
    assert fold_angle(angle) == pytest.approx(expected)


def test_ray_integral_is_callable_directly(ones_8):
    assert ray_integral(3, 3, ones_8.values, 0.0, 8) == pytest.approx(7.0)


# ---------------------------------------------------------------------------
# Substrates
# ---------------------------------------------------------------------------


def test_thread_pool_grid_layout(thread_substrate):
    out = thread_substrate.run_parallel_2d(4, lambda u, v: u + 10 * v)
    assert out[0, 3] == 3
    assert out[2, 1] == 21
    assert out.dtype == np.float64


def test_thread_pool_passes_args(thread_substrate):
    out = thread_substrate.run_parallel_2d(3, lambda u, v, a, b: a * u + b, 2.0, 1.0)
    np.testing.assert_array_equal(out[0], [1.0, 3.0, 5.0])


def test_numba_rejects_python_callables(numba_substrate):
    with pytest.raises(TypeError):
        numba_substrate.run_parallel_2d(4, lambda u, v: 0.0)


def test_numba_thread_count_is_restored(ones_8):
    import numba as nb

    before = nb.get_num_threads()
    out = project(ones_8, 0.0, substrate=NumbaSubstrate(num_threads=1))
    assert out[3, 3] == pytest.approx(7.0)
    assert nb.get_num_threads() == before


def test_memory_error_becomes_substrate_error(thread_substrate):
    def exhausted(u, v):
        raise MemoryError("cannot allocate")

    with pytest.raises(ComputeSubstrateError) as exc_info:
        thread_substrate.run_parallel_2d(4, exhausted)
    assert exc_info.value.user_message == "Hardware limit reached. Try a lower resolution."


def test_make_substrate():
    assert isinstance(make_substrate("numba"), NumbaSubstrate)
    assert isinstance(make_substrate("threads"), ThreadPoolSubstrate)
    with pytest.raises(ValueError):
        make_substrate("webgpu")
