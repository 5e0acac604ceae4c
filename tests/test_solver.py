import numpy as np
import pytest

from photostereo.config import RobustParams
from photostereo.errors import ConfigurationError, DegenerateInputWarning, NonConvergenceNotice
from photostereo.lights import LightModel
from photostereo.mask import select_pixels
from photostereo.observations import ObservationMatrices, build_observations
from photostereo.pipeline import solve_images
from photostereo.solver import light_pinv, median, normalize_columns, robust_channel_albedo, shrink, solve_normals_albedo

from conftest import DIRECTIONS, INTENSITIES, UP, render_flat_patch, render_sphere

# Penalty large enough for the shrinkage to act on max-normalized data
OUTLIER_PARAMS = RobustParams(mu=2.0, epsilon=1e-6)


def normal_error(maps):
    return np.abs(maps.normals - UP).max()


def corrupt(images, index=3, factor=5.0):
    images = [img.copy() for img in images]
    images[index] *= factor
    return images


# ----------------- Operators ----------------- #

def test_shrink_values():
    x = np.array([-3.0, -1.0, -0.5, 0.0, 0.5, 1.0, 2.0])
    np.testing.assert_allclose(shrink(x, 1.0), [-2.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0])


def test_shrink_zero_and_monotonic():
    assert shrink(np.array([0.0]), 3.0)[0] == 0.0
    x = np.linspace(0, 5, 101)
    for t in (0.0, 0.3, 2.0):
        out = np.abs(shrink(x, t))
        assert np.all(np.diff(out) >= 0)
        np.testing.assert_allclose(shrink(-x, t), -shrink(x, t))
    np.testing.assert_allclose(shrink(x, 0.0), x)


@pytest.mark.parametrize("values, expected", [
    ([3.0, 1.0, 2.0], 2.0),
    ([4.0, 1.0, 3.0, 2.0], 2.5),
    ([5.0, 1.0, 4.0, 2.0, 3.0], 3.0),
])
def test_median(values, expected):
    assert median(values) == expected


def test_median_skips_nan_and_works_along_an_axis():
    assert median([np.nan, 4.0, 1.0, 3.0, 2.0]) == 2.5
    np.testing.assert_allclose(median([[1.0, 5.0], [3.0, np.nan], [2.0, 7.0]], axis=0), [2.0, 6.0])


def test_robust_albedo_is_the_median_ratio_over_an_even_image_count():
    L = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 2.0], [0.0, 0.0, 4.0], [0.0, 0.0, 1.0]])
    # pixel 0 faces the lights, pixel 1 is never lit
    normals = np.array([[0.0, 1.0], [0.0, 0.0], [1.0, 0.0]])
    color = np.zeros((12, 2))
    color[0::3, 0] = [1.0, 4.0, 2.0, 8.0]   # R ratios 1, 2, 0.5, 8
    color[1::3, 0] = [3.0, 2.0, 4.0, 1.0]   # G ratios 3, 1, 1, 1
    color[2::3, 0] = [2.0, 2.0, 2.0, 2.0]   # B ratios 2, 1, 0.5, 2
    obs = ObservationMatrices(color, np.zeros((4, 2)))
    albedo = robust_channel_albedo(L, normals, obs)
    np.testing.assert_allclose(albedo[:, 0], [1.5, 1.0, 1.5])
    np.testing.assert_array_equal(albedo[:, 1], 0.0)


def test_normalize_columns_keeps_zero_columns():
    M = np.array([[3.0, 0.0], [4.0, 0.0], [0.0, 0.0]])
    unit, zero = normalize_columns(M)
    np.testing.assert_allclose(unit[:, 0], [0.6, 0.8, 0.0])
    np.testing.assert_array_equal(unit[:, 1], 0.0)
    assert zero.tolist() == [False, True]


def test_light_pinv_rejects_rank_deficient_lights():
    coplanar = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [1.0, -1.0, 0.0]])
    with pytest.raises(ConfigurationError):
        light_pinv(coplanar)
    with pytest.raises(ConfigurationError):
        light_pinv(DIRECTIONS[:2])


# ----------------- Synthetic scenes ----------------- #

@pytest.mark.parametrize("robust", [False, True])
def test_flat_patch_round_trip(lights, flat_images, robust):
    maps = solve_images(flat_images, lights, robust=robust)
    assert normal_error(maps) < 1e-3
    np.testing.assert_allclose(maps.albedo, 1.0, atol=1e-3)
    if robust:
        assert maps.converged is True
    else:
        assert maps.converged is None


def test_outlier_hurts_least_squares(lights, flat_images):
    clean = solve_images(flat_images, lights)
    dirty = solve_images(corrupt(flat_images), lights)
    assert normal_error(dirty) > 0.1
    assert normal_error(dirty) > 100 * normal_error(clean)


def test_robust_rejects_outlier(lights, flat_images):
    maps = solve_images(corrupt(flat_images), lights, robust=True, params=OUTLIER_PARAMS)
    assert maps.converged
    assert normal_error(maps) < 1e-3
    np.testing.assert_allclose(maps.albedo, 1.0, atol=1e-3)


def test_default_robust_constants_converge(lights, flat_images):
    maps = solve_images(corrupt(flat_images), lights, robust=True)
    assert maps.converged
    norms = np.linalg.norm(maps.normals, axis=-1)
    np.testing.assert_allclose(norms, 1.0, atol=1e-5)


def test_non_convergence_is_reported(lights, flat_images):
    params = RobustParams(mu=2.0, epsilon=0.0, max_iterations=5)
    with pytest.warns(NonConvergenceNotice):
        maps = solve_images(corrupt(flat_images), lights, robust=True, params=params)
    assert maps.converged is False
    assert np.all(np.isfinite(maps.normals))


@pytest.mark.parametrize("robust", [False, True])
def test_unit_normals_on_sphere(robust):
    images, inside = render_sphere(DIRECTIONS)
    maps = solve_images(images, LightModel(DIRECTIONS, np.ones((4, 3))), mask=inside.astype(np.float32),
                        robust=robust)
    norms = np.linalg.norm(maps.normals, axis=-1)
    selected = norms[inside]
    assert np.all((selected == 0) | (np.abs(selected - 1.0) < 1e-5))
    np.testing.assert_array_equal(maps.normals[~inside], 0.0)
    np.testing.assert_array_equal(maps.albedo[~inside], 0.0)
    assert maps.albedo.max() == pytest.approx(1.0)
    assert maps.albedo.min() >= 0.0


def test_lambertian_sphere_normals_are_recovered():
    # every pixel of the disc is lit by all four lights
    images, inside = render_sphere(DIRECTIONS, rows=41, cols=41)
    lit = np.all([img[..., 0] > 0 for img in images], axis=0) & inside
    maps = solve_images(images, LightModel(DIRECTIONS, np.ones((4, 3))), mask=lit.astype(np.float32))
    y, x = np.mgrid[0:41, 0:41]
    x, y = (x - 20) / 20.0, (y - 20) / 20.0
    truth = np.stack([x, y, np.sqrt(np.clip(1 - x ** 2 - y ** 2, 0, None))], axis=-1)
    np.testing.assert_allclose(maps.normals[lit], truth[lit], atol=1e-5)


def test_zero_normal_pixel_is_black(lights, flat_images):
    images = [img.copy() for img in flat_images]
    for img in images:
        img[1, 2] = 0.0
    with pytest.warns(DegenerateInputWarning):
        maps = solve_images(images, lights)
    np.testing.assert_array_equal(maps.normals[1, 2], 0.0)
    np.testing.assert_array_equal(maps.albedo[1, 2], 0.0)
    assert np.abs(maps.normals[0, 0] - UP).max() < 1e-6


def test_all_zero_pictures_do_not_raise(lights):
    images = [np.zeros((3, 3, 3)) for _ in range(4)]
    with pytest.warns(DegenerateInputWarning):
        maps = solve_images(images, lights, robust=True)
    np.testing.assert_array_equal(maps.normals, 0.0)
    np.testing.assert_array_equal(maps.albedo, 0.0)


def test_empty_selection_gives_empty_maps(lights, flat_images):
    with pytest.warns(DegenerateInputWarning):
        maps = solve_images(flat_images, lights, mask=np.zeros((4, 5)))
    assert maps.normals.shape == (4, 5, 3)
    np.testing.assert_array_equal(maps.normals, 0.0)
    np.testing.assert_array_equal(maps.mask, 0.0)


def test_channel_albedo_follows_surface_colour(lights):
    images = render_flat_patch(DIRECTIONS, INTENSITIES, albedo=(0.5, 1.0, 0.25))
    for robust in (False, True):
        maps = solve_images(images, lights, robust=robust)
        np.testing.assert_allclose(maps.albedo[0, 0], [0.5, 1.0, 0.25], atol=1e-6)


def test_harmonics_lighting_solve():
    rng = np.random.default_rng(7)
    L = rng.normal(size=(12, 9))
    coefficients = np.array([0.0, 0.0, 1.0, 0.5, 0.0, 0.0, 0.0, 0.0, 0.0])
    shading = L @ coefficients
    images = [np.full((2, 3, 3), s) for s in shading]
    lights = LightModel(L, np.ones((12, 3)))
    assert lights.order == 2
    maps = solve_images(images, lights)
    np.testing.assert_allclose(maps.normals, np.broadcast_to(UP, (2, 3, 3)), atol=1e-6)


def test_solver_rejects_light_count_mismatch(lights, flat_images):
    selection = select_pixels(None, 4, 5)
    obs = build_observations(flat_images[:3], INTENSITIES[:3], selection)
    with pytest.raises(ConfigurationError):
        solve_normals_albedo(obs, lights)
