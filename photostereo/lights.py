import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from .config import Config
from .errors import ConfigurationError

### Known lighting of a capture set: one direction (or harmonics row) and one RGB intensity per image.

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class LightModel:
    """
    Ordered light samples, one per input image.

    directions  : (K, dim) float64, dim = 3 (directional) or 9 (2nd order harmonics)
    intensities : (K, 3) float64, per-channel light intensity
    """
    directions: np.ndarray
    intensities: np.ndarray

    def __post_init__(self):
        d = np.atleast_2d(np.asarray(self.directions, dtype=np.float64))
        s = np.atleast_2d(np.asarray(self.intensities, dtype=np.float64))
        if d.shape[1] not in (3, 9):
            raise ConfigurationError(f"Light vectors must have 3 or 9 terms, got {d.shape[1]}")
        if s.shape[1] != 3:
            raise ConfigurationError(f"Light intensities must have 3 channels, got {s.shape[1]}")
        if d.shape[0] != s.shape[0]:
            raise ConfigurationError(
                f"{d.shape[0]} light directions but {s.shape[0]} light intensities"
            )
        object.__setattr__(self, "directions", d)
        object.__setattr__(self, "intensities", s)

    @property
    def count(self) -> int:
        return self.directions.shape[0]

    @property
    def dim(self) -> int:
        return self.directions.shape[1]

    @property
    def order(self) -> int:
        return 0 if self.dim == 3 else 2

    def check_against(self, image_count: int):
        """Raise if the model cannot drive a solve over `image_count` images."""
        if self.count != image_count:
            raise ConfigurationError(
                f"Light model has {self.count} samples for {image_count} images"
            )
        if self.dim > image_count:
            raise ConfigurationError(
                f"{image_count} images cannot determine {self.dim} lighting terms"
            )
        if np.linalg.matrix_rank(self.directions) < self.dim:
            raise ConfigurationError(
                "Light matrix is rank deficient (coplanar or repeated light directions)"
            )


# ----------------- Text light files ----------------- #

def _read_rows(path: Path, width: int) -> np.ndarray:
    if not path.is_file():
        raise ConfigurationError(f"Can't open '{path}'")
    try:
        rows = np.loadtxt(path, dtype=np.float64, ndmin=2)
    except ValueError as e:
        raise ConfigurationError(f"Malformed light file '{path}': {e}") from e
    if rows.size == 0:
        raise ConfigurationError(f"Light file '{path}' is empty")
    if rows.shape[1] < width:
        raise ConfigurationError(f"Expected {width} values per line in '{path}', got {rows.shape[1]}")
    return rows[:, :width]


def load_light_intensities(path) -> np.ndarray:
    """One `r g b` line per image."""
    return _read_rows(Path(path), 3)


def read_conversion_matrix(path) -> np.ndarray:
    """3x3 basis change applied to light directions; identity when the file is absent."""
    path = Path(path)
    if not path.is_file():
        return np.eye(3)
    try:
        values = np.loadtxt(path, dtype=np.float64).ravel()
    except ValueError as e:
        raise ConfigurationError(f"Malformed conversion matrix '{path}': {e}") from e
    if values.size < 9:
        raise ConfigurationError(f"Conversion matrix '{path}' needs 9 values, got {values.size}")
    return values[:9].reshape(3, 3)


def load_light_directions(path, conversion: Optional[np.ndarray] = None) -> np.ndarray:
    """One `x y z` line per image, each mapped through the conversion matrix."""
    L = _read_rows(Path(path), 3)
    if conversion is not None:
        L = L @ np.asarray(conversion, dtype=np.float64).T
    return L


def load_light_harmonics(path) -> np.ndarray:
    """
    One line of 9 coefficients per image:
        x y z ambient nxny nxnz nynz nx2-ny2 nz2
    The y and z terms are stored with flipped sign (image y points down, camera z points away).
    """
    L = _read_rows(Path(path), 9).copy()
    L[:, 1:3] *= -1.0
    return L


def load_light_folder(folder, hs_order: int = Config.DEFAULT_HS_ORDER, image_count: Optional[int] = None) -> LightModel:
    """Build a LightModel from the text files of a light-data folder."""
    folder = Path(folder)
    intensities = load_light_intensities(folder / Config.LIGHT_INTENSITIES_FILE)
    dim = Config.light_dim(hs_order)
    if dim == 3:
        conversion = read_conversion_matrix(folder / Config.CONVERSION_MATRIX_FILE)
        directions = load_light_directions(folder / Config.LIGHT_DIRECTIONS_FILE, conversion)
    else:
        directions = load_light_harmonics(folder / Config.LIGHT_HARMONICS_FILE)

    # Extra lines beyond the image count are ignored, missing ones are an error
    if image_count is not None:
        if len(intensities) < image_count or len(directions) < image_count:
            raise ConfigurationError(
                f"Light data in '{folder}' describes {min(len(intensities), len(directions))} "
                f"lights for {image_count} images"
            )
        intensities = intensities[:image_count]
        directions = directions[:image_count]
    return LightModel(directions, intensities)


# ----------------- JSON light files ----------------- #

def _light_vector(path: Path, name: str, light, key: str, size: int) -> np.ndarray:
    try:
        v = np.asarray(light[key], dtype=np.float64)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Light '{name}' in '{path}' has no usable '{key}': {e}") from e
    if v.shape != (size,):
        raise ConfigurationError(f"Light '{name}' in '{path}': '{key}' needs {size} values, got shape {v.shape}")
    return v


def load_light_json(path, image_paths, hs_order: int = Config.DEFAULT_HS_ORDER) -> LightModel:
    """
    Match each image to a light of a JSON document
        {"lights": {"<name>": {"intensity": [r, g, b], "direction": [x, y, z]}, ...}}
    A light matches an image when its name is contained (case-insensitively) in the image stem.
    Lights are tried in file order and the first match wins; ambiguous names are not detected.
    With hs_order 2 each direction holds the 9 harmonics coefficients.
    """
    path = Path(path)
    dim = Config.light_dim(hs_order)
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Can't read light file '{path}': {e}") from e

    lights = doc.get("lights") if isinstance(doc, dict) else None
    if not isinstance(lights, dict) or not lights:
        raise ConfigurationError(f"No 'lights' entry in '{path}'")

    directions, intensities = [], []
    for image_path in image_paths:
        stem = Path(image_path).stem.lower()
        for name, light in lights.items():
            if name.lower() in stem:
                directions.append(_light_vector(path, name, light, "direction", dim))
                intensities.append(_light_vector(path, name, light, "intensity", 3))
                break
        else:
            raise ConfigurationError(f"No light in '{path}' matches image '{image_path}'")
    return LightModel(np.array(directions).reshape(-1, dim), np.array(intensities).reshape(-1, 3))


def load_light_data(light_data, image_paths, hs_order: int = Config.DEFAULT_HS_ORDER) -> LightModel:
    """Dispatch on the light-data path: a folder of text files or a JSON document."""
    light_data = Path(light_data)
    if light_data.is_dir():
        logger.debug("Loading light folder %s (HS order %d)", light_data, hs_order)
        model = load_light_folder(light_data, hs_order, image_count=len(image_paths))
    elif light_data.is_file():
        logger.debug("Loading light JSON %s", light_data)
        model = load_light_json(light_data, image_paths, hs_order)
    else:
        raise ConfigurationError(f"Light data '{light_data}' does not exist")
    model.check_against(len(image_paths))
    return model

