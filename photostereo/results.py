from dataclasses import dataclass
from typing import Optional

import numpy as np

from .mask import PixelSelection
from .solver import SolverOutput, normalize_columns

### Scatter of per-pixel solver columns back into dense rows x cols maps.


@dataclass
class ResultMaps:
    """
    normals   : HxWx3 float32, unit vectors, zero where no normal was recovered
    albedo    : HxWx3 float32, non-negative, max-normalized
    mask      : HxW float32 0/1 field of the pixels that took part in the solve
    converged : None unless the robust refinement ran
    """
    normals: np.ndarray
    albedo: np.ndarray
    mask: np.ndarray
    converged: Optional[bool] = None


def scatter_columns(columns: np.ndarray, selection: PixelSelection) -> np.ndarray:
    """(C, count) columns -> rows x cols x C map, unselected pixels left at zero."""
    C = columns.shape[0]
    flat = np.zeros((selection.rows * selection.cols, C), dtype=np.float32)
    flat[selection.linear_indices()] = columns.T
    # linear index = col*rows + row
    return flat.reshape(selection.cols, selection.rows, C).transpose(1, 0, 2)


def assemble_maps(output: SolverOutput, selection: PixelSelection) -> ResultMaps:
    """Dense normal, albedo and mask maps from a solve over `selection`."""
    # 2nd order harmonics: the map keeps the directional part, re-normalized
    directional = output.normals[:3]
    if output.normals.shape[0] > 3:
        directional, _ = normalize_columns(directional)
    return ResultMaps(
        normals=np.ascontiguousarray(scatter_columns(directional, selection)),
        albedo=np.ascontiguousarray(scatter_columns(output.albedo, selection)),
        mask=selection.as_array(),
        converged=output.converged,
    )
