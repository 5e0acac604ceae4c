import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import RobustParams
from .errors import ConfigurationError, DegenerateInputWarning, NonConvergenceNotice
from .lights import LightModel
from .observations import ObservationMatrices
from .preprocessing import normalize_max

### Core logic of the photometric solve.
### Lambertian model, one column per active pixel:  L @ M = I,  L: (K, dim) lights,  M: (dim, P),  I: (K, P).
### The normal is the direction of each column of M, the albedo its magnitude.

logger = logging.getLogger(__name__)


def shrink(x: np.ndarray, t: float) -> np.ndarray:
    """Soft threshold, the proximal operator of t*|x|:  sign(x) * max(|x| - t, 0)."""
    return np.sign(x) * np.maximum(np.abs(x) - t, 0.0)


def median(values, axis=None):
    """
    Middle sorted element; mean of the two middle ones for an even count.
    NaN entries are left out. With `axis` the median is taken along that axis.
    """
    values = np.asarray(values, dtype=np.float64)
    if axis is None:
        return float(np.nanmedian(values.ravel()))
    return np.nanmedian(values, axis=axis)


def light_pinv(L: np.ndarray) -> np.ndarray:
    """SVD pseudo-inverse of the light matrix, refusing rank-deficient lighting."""
    K, dim = L.shape
    if dim > K:
        raise ConfigurationError(f"{K} images cannot determine {dim} lighting terms")
    if np.linalg.matrix_rank(L) < dim:
        raise ConfigurationError("Light matrix is rank deficient (coplanar or repeated light directions)")
    return np.linalg.pinv(L)


def solve_least_squares(pinv: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Least-squares M of L @ M = B given pinv(L)."""
    return pinv @ B


def normalize_columns(M: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Unit-length columns; zero columns stay zero. Returns (unit columns, zero-column flags)."""
    norms = np.linalg.norm(M, axis=0)
    zero = norms == 0
    out = np.zeros_like(M)
    out[:, ~zero] = M[:, ~zero] / norms[~zero]
    return out, zero


@dataclass
class RefineResult:
    M: np.ndarray
    iterations: int
    converged: bool


def robust_refine(L: np.ndarray, pinv: np.ndarray, I: np.ndarray, M: np.ndarray,
                  params: RobustParams = RobustParams()) -> RefineResult:
    """
    Augmented Lagrangian refinement of L @ M = I + E with a sparse error term E:

        min ||E||_1   s.t.   L @ M - I = E

    E absorbs observations that do not fit the Lambertian model (highlights, cast shadows).
    W is the multiplier of the constraint, mu the penalty weight.
    """
    mu = params.mu
    E = L @ M - I
    W = np.zeros_like(E)
    change = np.inf

    for k in range(params.max_iterations):
        M_prev = M

        # M update
        M = solve_least_squares(pinv, I + E - W / mu)
        LM = L @ M

        # E update
        E = shrink(LM - I + W / mu, 1.0 / mu)

        # W update
        W = W + mu * (LM - I - E)

        # Convergence test on the relative change of M
        norm = np.linalg.norm(M)
        change = np.linalg.norm(M_prev - M) / norm if norm > 0 else np.linalg.norm(M_prev - M)
        if k > params.min_iterations and change < params.epsilon:
            logger.info("Robust refinement converged after %d iterations", k + 1)
            return RefineResult(M, k + 1, True)

    warnings.warn(
        f"Robust refinement did not converge in {params.max_iterations} iterations "
        f"(last relative change {change:.3g}, tolerance {params.epsilon})",
        NonConvergenceNotice,
        stacklevel=2,
    )
    return RefineResult(M, params.max_iterations, False)


def channel_albedo(pinv: np.ndarray, obs: ObservationMatrices) -> np.ndarray:
    """Per channel least-squares refit; the albedo is the norm of each solved column. Returns (3, P)."""
    albedo = np.zeros((3, obs.pixel_count), dtype=np.float64)
    for ch in range(3):
        albedo[ch] = np.linalg.norm(solve_least_squares(pinv, obs.channel(ch)), axis=0)
    return albedo


def robust_channel_albedo(L: np.ndarray, normals: np.ndarray, obs: ObservationMatrices) -> np.ndarray:
    """
    Per channel median over images of observed / predicted shading, with shading = L @ n.
    Images where the predicted shading is exactly zero are left out; a pixel with no usable image gets 0.
    """
    shading = L @ normals  # (K, P)
    lit = shading != 0
    albedo = np.zeros((3, obs.pixel_count), dtype=np.float64)
    for ch in range(3):
        ratio = np.full(shading.shape, np.nan)
        ratio[lit] = obs.channel(ch)[lit] / shading[lit]
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)  # all-NaN columns
            albedo[ch] = median(ratio, axis=0) if ratio.size else 0.0
    return np.maximum(np.nan_to_num(albedo, nan=0.0), 0.0)


@dataclass
class SolverOutput:
    """
    normals    : (dim, P) unit columns (zero for degenerate pixels)
    albedo     : (3, P) non-negative, max-normalized
    converged  : None in least-squares mode
    """
    normals: np.ndarray
    albedo: np.ndarray
    converged: Optional[bool] = None
    iterations: int = 0


def solve_normals_albedo(obs: ObservationMatrices, lights, robust: bool = False,
                         params: RobustParams = RobustParams()) -> SolverOutput:
    """Normals and per-channel albedo of every active pixel, by least squares or robust refinement."""
    L = lights.directions if isinstance(lights, LightModel) else np.asarray(lights, dtype=np.float64)
    if L.shape[0] != obs.image_count:
        raise ConfigurationError(f"{L.shape[0]} lights for {obs.image_count} images")
    pinv = light_pinv(L)

    # Normal estimation on the luminance observations
    M = solve_least_squares(pinv, obs.gray)
    converged, iterations = None, 0
    if robust and obs.pixel_count > 0:
        refined = robust_refine(L, pinv, obs.gray, M, params)
        M, converged, iterations = refined.M, refined.converged, refined.iterations

    normals, zero = normalize_columns(M)
    if obs.pixel_count and zero.any():
        warnings.warn(
            f"{int(zero.sum())} pixels have a zero normal and are left black",
            DegenerateInputWarning,
            stacklevel=2,
        )

    # Channel-wise albedo estimation
    if robust:
        albedo = robust_channel_albedo(L, normals, obs)
    else:
        albedo = channel_albedo(pinv, obs)
    albedo = normalize_max(albedo, "albedo") if obs.pixel_count else albedo

    return SolverOutput(normals, albedo, converged, iterations)
