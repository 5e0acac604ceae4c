import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from .config import Config
from .errors import ConfigurationError, DegenerateInputWarning
from .image_io import load_gray_float
from .preprocessing import downscale

### Region of interest and the column-major pixel ordering shared by the observation matrix and the result maps.

logger = logging.getLogger(__name__)


class NoMask:
    """Every pixel participates."""

    def __repr__(self):
        return "NO_MASK"

    def downscaled(self, factor: int):
        return self


NO_MASK = NoMask()


@dataclass(frozen=True, eq=False)
class Mask:
    """Single-channel field in [0,1]; pixels above the threshold are selected."""
    values: np.ndarray

    def __post_init__(self):
        v = np.asarray(self.values, dtype=np.float32)
        if v.ndim != 2:
            raise ConfigurationError(f"Mask must be 2-D, got shape {v.shape}")
        object.__setattr__(self, "values", v)

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape

    def downscaled(self, factor: int) -> "Mask":
        if factor <= 1:
            return self
        return Mask(downscale(self.values, factor))


def as_mask(values) -> "Mask | NoMask":
    """Wrap an array as a Mask. None and the legacy 1x1 placeholder mean NO_MASK."""
    if values is None or isinstance(values, (Mask, NoMask)):
        return NO_MASK if values is None else values
    values = np.asarray(values)
    if values.shape[:2] == (1, 1):
        return NO_MASK
    if values.ndim == 3:
        values = values[..., 0]
    return Mask(values)


def load_mask(path, required: bool = False) -> "Mask | NoMask":
    """
    Load a mask image. A missing optional mask means every pixel is used;
    a missing required mask is a configuration error.
    """
    if path is None or not Path(path).is_file():
        if required:
            raise ConfigurationError(f"Mask '{path}' does not exist")
        logger.info("Can not open mask %s. Every pixel will be used", path)
        return NO_MASK
    return as_mask(load_gray_float(path))


@dataclass(frozen=True, eq=False)
class PixelSelection:
    """
    Active pixels of a rows x cols image, as linear indices `col*rows + row`.
    `indices` is None when every pixel is active (identity mapping).
    """
    rows: int
    cols: int
    indices: Optional[np.ndarray] = None

    @property
    def count(self) -> int:
        return self.rows * self.cols if self.indices is None else len(self.indices)

    @property
    def is_full(self) -> bool:
        return self.indices is None

    def linear_indices(self) -> np.ndarray:
        if self.indices is None:
            return np.arange(self.rows * self.cols)
        return self.indices

    def take(self, image: np.ndarray) -> np.ndarray:
        """Project an HxW or HxWxC image onto the selection: (C, count) in column-major pixel order."""
        if image.shape[:2] != (self.rows, self.cols):
            raise ConfigurationError(
                f"Image of shape {image.shape[:2]} does not match selection {(self.rows, self.cols)}"
            )
        flat = image.reshape(self.rows, self.cols, -1).transpose(1, 0, 2).reshape(self.rows * self.cols, -1)
        if self.indices is not None:
            flat = flat[self.indices]
        return flat.T

    def as_array(self) -> np.ndarray:
        """The selection as a rows x cols float32 field of 0/1."""
        flat = np.zeros(self.rows * self.cols, dtype=np.float32)
        flat[self.linear_indices()] = 1.0
        return flat.reshape(self.cols, self.rows).T


def select_pixels(mask, rows: int, cols: int, threshold: float = Config.MASK_THRESHOLD) -> PixelSelection:
    """Active pixels of a rows x cols image for a Mask or NO_MASK."""
    mask = as_mask(mask)
    if isinstance(mask, NoMask):
        return PixelSelection(rows, cols)
    if mask.shape != (rows, cols):
        raise ConfigurationError(f"Mask of shape {mask.shape} does not match images of shape {(rows, cols)}")

    # Column-major scan: index = col*rows + row
    indices = np.flatnonzero(mask.values.T.ravel() > threshold)
    if indices.size == 0:
        warnings.warn(
            f"Mask selects no pixel above threshold {threshold}", DegenerateInputWarning, stacklevel=2
        )
    return PixelSelection(rows, cols, indices)
