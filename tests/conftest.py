import numpy as np
import pytest

from photostereo.lights import LightModel
import cv2

# Four lights around the camera; asymmetric so that a single corrupted picture is identifiable
RAW_DIRECTIONS = np.array([
    [0.5, 0.0, 1.0],
    [0.0, 0.5, 1.0],
    [-0.5, -0.5, 1.0],
    [0.3, 0.3, 1.0],
])
DIRECTIONS = RAW_DIRECTIONS / np.linalg.norm(RAW_DIRECTIONS, axis=1, keepdims=True)
INTENSITIES = np.array([
    [1.0, 1.0, 1.0],
    [0.8, 0.9, 1.0],
    [1.2, 1.0, 0.7],
    [0.9, 1.1, 1.0],
])
UP = np.array([0.0, 0.0, 1.0])


def render_flat_patch(directions, intensities, rows=4, cols=5, normal=UP, albedo=(1.0, 1.0, 1.0)):
    """Lambertian pictures of a flat patch, one per light."""
    images = []
    for l, s in zip(directions, intensities):
        shading = max(float(np.dot(l, normal)), 0.0)
        pixel = np.asarray(albedo) * np.asarray(s) * shading
        images.append(np.broadcast_to(pixel, (rows, cols, 3)).astype(np.float64).copy())
    return images


def render_sphere(directions, rows=21, cols=21):
    """Lambertian pictures of a unit hemisphere seen from above, plus its silhouette."""
    y, x = np.mgrid[0:rows, 0:cols]
    x = (x - (cols - 1) / 2) / ((cols - 1) / 2)
    y = (y - (rows - 1) / 2) / ((rows - 1) / 2)
    inside = x ** 2 + y ** 2 < 0.8
    z = np.sqrt(np.clip(1 - x ** 2 - y ** 2, 0, None))
    n = np.stack([x, y, z], axis=-1) * inside[..., None]
    images = []
    for l in directions:
        shading = np.clip(n @ l, 0, None)
        images.append(np.repeat(shading[..., None], 3, axis=-1))
    return images, inside


@pytest.fixture
def lights():
    return LightModel(DIRECTIONS, INTENSITIES)


@pytest.fixture
def flat_images():
    return render_flat_patch(DIRECTIONS, INTENSITIES)


def write_png16(path, rgb):
    """Write an RGB float image in [0,1] as a 16-bit PNG."""
    im = np.clip(np.round(rgb * 65535.0), 0, 65535).astype(np.uint16)
    cv2.imwrite(str(path), cv2.cvtColor(im, cv2.COLOR_RGB2BGR))


def write_light_folder(folder, directions=DIRECTIONS, intensities=INTENSITIES):
    np.savetxt(folder / "light_directions.txt", directions)
    np.savetxt(folder / "light_intensities.txt", intensities)


@pytest.fixture
def capture_folder(tmp_path):
    """Capture folder with PS_Pictures/ holding four 16-bit pictures and the light text files."""
    root = tmp_path / "capture"
    pictures = root / "PS_Pictures"
    pictures.mkdir(parents=True)
    for i, img in enumerate(render_flat_patch(DIRECTIONS, INTENSITIES * 0.8, rows=6, cols=8)):
        write_png16(pictures / f"img_{i:02d}.png", img)
    write_light_folder(root)
    return root
