import warnings
from typing import Optional

import numpy as np
import cv2

from .config import Config
from .errors import ConfigurationError, DegenerateInputWarning

### Image conditioning applied before the photometric solve: resampling, ambient removal, exposure and scale normalization.


def downscale(img: np.ndarray, factor: int) -> np.ndarray:
    """Area-averaged reduction by an integer factor; channel count is preserved."""
    if int(factor) != factor or factor < 1:
        raise ConfigurationError(f"Downscale factor must be an integer >= 1, got {factor}")
    factor = int(factor)
    if factor == 1:
        return img
    H, W = img.shape[:2]
    h, w = H // factor, W // factor
    if h == 0 or w == 0:
        raise ConfigurationError(f"Image of size {W}x{H} is too small for downscale factor {factor}")
    out = cv2.resize(img, (w, h), interpolation=cv2.INTER_AREA)
    if img.ndim == 3 and out.ndim == 2:
        out = out[..., None]
    return out


def subtract_ambient(img: np.ndarray, ambient: Optional[np.ndarray] = None) -> np.ndarray:
    """Remove the always-on ambient term, channel by channel."""
    if ambient is None:
        return img
    if ambient.shape != img.shape:
        raise ConfigurationError(f"Ambient image of shape {ambient.shape} does not match image shape {img.shape}")
    return img - ambient


def scale_intensities(img: np.ndarray, intensity) -> np.ndarray:
    """Divide each channel by the intensity of the light that lit the picture."""
    intensity = np.asarray(intensity, dtype=np.float64).reshape(1, 1, -1)
    return img / intensity


def luminance(rgb: np.ndarray, weights=Config.LUMINANCE_WEIGHTS) -> np.ndarray:
    """Relative luminance of a (..., 3, N) block of stacked R, G, B rows."""
    w = np.asarray(weights, dtype=np.float64)
    return w[0] * rgb[..., 0, :] + w[1] * rgb[..., 1, :] + w[2] * rgb[..., 2, :]


def normalize_max(mat: np.ndarray, what: str = "matrix") -> np.ndarray:
    """Divide by the global maximum. Empty data is returned as is; data without a positive value is returned unchanged with a warning."""
    if mat.size == 0:
        return mat
    m = mat.max()
    if m <= 0:
        warnings.warn(f"{what} has no positive value, skipping max normalization", DegenerateInputWarning, stacklevel=2)
        return mat
    return mat / m


def normalize_uint8(img: np.ndarray) -> np.ndarray:
    """Normalize an image to [0,255] uint8 for visualization (ignores NaNs)."""
    m = np.isfinite(img)
    if not np.any(m):
        return np.zeros_like(img, dtype=np.uint8)
    a, b = img[m].min(), img[m].max()
    if b <= a + 1e-12:
        out = np.zeros_like(img, dtype=np.uint8)
        out[m] = 0
        return out
    out = np.zeros_like(img, dtype=np.float32)
    out[m] = (img[m] - a) / (b - a)
    return np.clip(out * 255.0, 0, 255).astype(np.uint8)
