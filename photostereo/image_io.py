import os
from pathlib import Path

import numpy as np

# OpenCV only decodes/encodes OpenEXR when asked to before the first import
os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")
import cv2

from .config import Config
from .errors import ConfigurationError

### Image loading and saving, isolated from the numerical code.
### Pixel values are never colour-space converted: integer images are only rescaled to [0,1].


def _to_float(im: np.ndarray) -> np.ndarray:
    if im.dtype == np.uint8:
        return im.astype(np.float32) / 255.0
    if im.dtype == np.uint16:
        return im.astype(np.float32) / 65535.0
    return im.astype(np.float32)


def load_rgb_float(path) -> np.ndarray:
    """Read an image as HxWx3 float32 RGB. Grayscale is replicated, alpha is dropped."""
    im = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if im is None:
        raise ConfigurationError(f"Failed to read: {path}")
    if im.ndim == 2:
        im = np.repeat(im[..., None], 3, axis=-1)
    elif im.shape[-1] == 4:
        im = cv2.cvtColor(im, cv2.COLOR_BGRA2RGB)
    else:
        im = cv2.cvtColor(im, cv2.COLOR_BGR2RGB)
    return _to_float(im)


def load_gray_float(path) -> np.ndarray:
    """Read a single-channel image (first channel of a colour file) as HxW float32."""
    im = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if im is None:
        raise ConfigurationError(f"Failed to read: {path}")
    if im.ndim == 3:
        im = im[..., 0]
    return _to_float(im)


def list_pictures(folder) -> list[str]:
    """Pictures of a capture folder sorted by name, skipping mask and ambient pictures."""
    folder = Path(folder)
    if not folder.is_dir():
        raise ConfigurationError(f"Picture folder '{folder}' does not exist")
    skip = (Config.MASK_KEYWORD,) + Config.AMBIENT_KEYWORDS
    files = []
    for f in folder.iterdir():
        if f.suffix.lower() not in Config.PICTURE_EXTENSIONS:
            continue
        if any(k in f.stem.lower() for k in skip):
            continue
        files.append(str(f))
    return sorted(files)


def save_image(img: np.ndarray, path: str, convert_bgr: bool = False):
    """Save image to disk, optionally converting RGB to BGR."""
    if convert_bgr:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    try:
        written = cv2.imwrite(str(path), img)
    except cv2.error as e:
        raise ConfigurationError(f"Failed to write: {path} ({e})") from e
    if not written:
        raise ConfigurationError(f"Failed to write: {path}")


def save_float_array(arr: np.ndarray, path: str, format: str = "npy"):
    """Save a float array as .npy, .pfm or .exr (RGB arrays are stored as BGR for the image formats)."""
    arr = np.nan_to_num(arr, nan=0.0).astype(np.float32)
    if format == "npy":
        np.save(path, arr)
    elif format in ("pfm", "exr"):
        save_image(arr, path, convert_bgr=arr.ndim == 3 and arr.shape[-1] == 3)
    else:
        raise ValueError(f"Unsupported format: {format}")
