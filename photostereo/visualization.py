import numpy as np
from pathlib import Path
from typing import Optional
from matplotlib.figure import Figure

from .image_io import save_image
from .preprocessing import normalize_uint8

### Export encodings of the result maps.


def encode_normals_rgb(n: np.ndarray) -> np.ndarray:
    """
    Map unit normals to 8-bit RGB: each axis a -> floor(255*(a+1)/2), with Y and Z flipped
    (image rows grow downwards, the camera looks along -Z). Zero normals are black.
    """
    flipped = n * np.array([1.0, -1.0, -1.0], dtype=np.float32)
    img = np.floor(255.0 * (flipped + 1.0) / 2.0)
    img = np.clip(img, 0, 255).astype(np.uint8)
    img[np.all(n == 0, axis=-1)] = 0
    return img


def save_normals_rgb(n: np.ndarray, path: str):
    """Write the normal map as an RGB PNG."""
    save_image(encode_normals_rgb(n), path, convert_bgr=True)


def save_mask(mask: np.ndarray, path: str):
    """Write a [0,1] mask as an 8-bit single-channel image."""
    save_image(np.clip(mask * 255.0, 0, 255).astype(np.uint8), path)


def save_summary_plot(normals: np.ndarray, albedo: np.ndarray, mask: np.ndarray, out_path: str, title: Optional[str] = None):
    """Side-by-side figure of the normal map, the albedo and the mask used."""
    fig = Figure(figsize=(12, 4))
    axes = fig.subplots(1, 3)
    panels = [
        (encode_normals_rgb(normals), "Normals"),
        (normalize_uint8(albedo), "Albedo"),
        (mask, "Mask"),
    ]
    for ax, (img, label) in zip(axes, panels):
        ax.imshow(img, cmap="gray" if img.ndim == 2 else None)
        ax.set_title(label)
        ax.axis("off")
    if title:
        fig.suptitle(title)

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, bbox_inches="tight")
