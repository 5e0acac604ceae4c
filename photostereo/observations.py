import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import Config
from .errors import ConfigurationError
from .image_io import load_rgb_float
from .mask import PixelSelection, as_mask, select_pixels
from .preprocessing import downscale, luminance, normalize_max, scale_intensities, subtract_ambient

### Assembly of the per-pixel observation matrices (one row per image, one column per active pixel).

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ObservationMatrices:
    """
    color : (3K, P) rows R,G,B of image 0, then R,G,B of image 1, ...
    gray  : (K, P) relative luminance of each image
    Both are divided by their own global maximum.
    """
    color: np.ndarray
    gray: np.ndarray

    @property
    def image_count(self) -> int:
        return self.gray.shape[0]

    @property
    def pixel_count(self) -> int:
        return self.gray.shape[1]

    def channel(self, ch: int) -> np.ndarray:
        """(K, P) observations of one colour channel."""
        return self.color[ch::3]


def build_observations(
    images,
    intensities,
    selection: PixelSelection,
    ambient: Optional[np.ndarray] = None,
    weights=Config.LUMINANCE_WEIGHTS,
) -> ObservationMatrices:
    """
    images      : sequence of K HxWx3 float images, in light order, already at solve resolution
    intensities : (K, 3) light intensities
    ambient     : optional HxWx3 picture taken with only the ambient light on
    """
    intensities = np.asarray(intensities, dtype=np.float64).reshape(-1, 3)
    if len(images) != len(intensities):
        raise ConfigurationError(f"{len(images)} images but {len(intensities)} light intensities")
    if np.any(intensities == 0):
        raise ConfigurationError("Light intensities must be non-zero")

    K, P = len(images), selection.count
    color = np.empty((3 * K, P), dtype=np.float64)
    gray = np.empty((K, P), dtype=np.float64)
    for i, img in enumerate(images):
        img = np.asarray(img, dtype=np.float64)
        img = subtract_ambient(img, ambient)
        img = scale_intensities(img, intensities[i])
        block = selection.take(img)  # (3, P)
        color[3 * i:3 * i + 3] = block
        gray[i] = luminance(block, weights)

    return ObservationMatrices(
        normalize_max(color, "color observation matrix"),
        normalize_max(gray, "luminance observation matrix"),
    )


def prepare_observations(
    images,
    intensities,
    mask=None,
    factor: int = Config.DEFAULT_DOWNSCALE,
    ambient: Optional[np.ndarray] = None,
) -> tuple[ObservationMatrices, PixelSelection]:
    """Downscale decoded pictures (and the mask), select the active pixels and assemble the matrices."""
    if not len(images):
        raise ConfigurationError("No picture to process")
    images = [downscale(np.asarray(img), factor) for img in images]
    for i, img in enumerate(images[1:], start=1):
        if img.shape != images[0].shape:
            raise ConfigurationError(f"Picture {i} has shape {img.shape}, expected {images[0].shape}")
    if ambient is not None:
        ambient = downscale(np.asarray(ambient), factor)

    rows, cols = images[0].shape[:2]
    selection = select_pixels(as_mask(mask).downscaled(factor), rows, cols)
    logger.debug("%d active pixels out of %dx%d", selection.count, rows, cols)
    return build_observations(images, intensities, selection, ambient), selection


def build_observations_from_files(
    image_paths,
    intensities,
    mask=None,
    factor: int = Config.DEFAULT_DOWNSCALE,
    ambient_path=None,
) -> tuple[ObservationMatrices, PixelSelection]:
    """Decode a list of pictures (and the optional ambient picture) and assemble the observation matrices."""
    if not image_paths:
        raise ConfigurationError("No picture to process")
    ambient = None
    if ambient_path is not None:
        logger.info("Removing ambient light using %s", ambient_path)
        ambient = load_rgb_float(ambient_path)
    images = [load_rgb_float(p) for p in image_paths]
    return prepare_observations(images, intensities, mask, factor, ambient)
