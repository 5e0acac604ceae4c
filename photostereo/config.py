from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

class Config:
    # --- Project root resolution ---
    # One up from /photostereo
    PROJECT_ROOT = Path(__file__).resolve().parent.parent

    # --- Input / Output layout ---
    DEFAULT_OUTPUT_DIR = str(PROJECT_ROOT / "Output")
    PICTURES_SUBDIR = "PS_Pictures"
    PICTURE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tif", ".tiff", ".exr", ".bmp")
    MASK_FILE = "mask.png"
    MASK_KEYWORD = "mask"
    AMBIENT_KEYWORDS = ("ambient", "ambiant")  # both spellings show up in capture sets

    # --- Light data files ---
    LIGHT_INTENSITIES_FILE = "light_intensities.txt"
    LIGHT_DIRECTIONS_FILE = "light_directions.txt"
    LIGHT_HARMONICS_FILE = "light_directions_HS.txt"
    CONVERSION_MATRIX_FILE = "convertionMatrix.txt"

    # --- Photometric parameters ---
    MASK_THRESHOLD = 0.7
    LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)  # Rec. 709 relative luminance
    DEFAULT_HS_ORDER = 0  # 0 -> directional (3 terms), 2 -> 2nd order harmonics (9 terms)
    DEFAULT_DOWNSCALE = 1
    DEFAULT_ALBEDO_FORMAT = "exr"

    # --- Robust refinement (augmented Lagrangian) ---
    ROBUST_MU = 0.1
    ROBUST_EPSILON = 0.001
    ROBUST_MAX_ITERATIONS = 1000
    ROBUST_MIN_ITERATIONS = 10  # no convergence check before this

    @classmethod
    def light_dim(cls, hs_order: int) -> int:
        """Number of lighting terms for a spherical-harmonics order."""
        if hs_order == 0:
            return 3
        if hs_order == 2:
            return 9
        raise ConfigurationError(f"Unsupported HS order {hs_order}, expected 0 or 2")

    @staticmethod
    def ensure_dir(path: str):
        """Create directory if it doesn't exist."""
        Path(path).mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class RobustParams:
    mu: float = Config.ROBUST_MU
    epsilon: float = Config.ROBUST_EPSILON
    max_iterations: int = Config.ROBUST_MAX_ITERATIONS
    min_iterations: int = Config.ROBUST_MIN_ITERATIONS
