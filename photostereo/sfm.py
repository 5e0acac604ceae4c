import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import Config
from .errors import ConfigurationError

### Multi-view scenes: views of an SfM JSON file grouped by the pose they were shot from.

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class View:
    view_id: str
    pose_id: str
    path: str


def _id_key(value: str):
    # numeric ids sort numerically, anything else after them by text
    return (0, int(value), "") if str(value).isdigit() else (1, 0, str(value))


def is_ambient(path) -> bool:
    """True when the file stem names an ambient-only picture."""
    stem = Path(path).stem.lower()
    return any(k in stem for k in Config.AMBIENT_KEYWORDS)


def load_sfm_views(sfm_path) -> list[View]:
    """Views of an SfM JSON scene: {"views": [{"viewId": ..., "poseId": ..., "path": ...}, ...]}."""
    sfm_path = Path(sfm_path)
    try:
        with open(sfm_path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"The input file '{sfm_path}' cannot be read: {e}") from e

    views = []
    for entry in doc.get("views", []):
        try:
            views.append(View(str(entry["viewId"]), str(entry["poseId"]), str(entry["path"])))
        except KeyError as e:
            raise ConfigurationError(f"View without {e} in '{sfm_path}'") from e
    if not views:
        raise ConfigurationError(f"No view in '{sfm_path}'")
    return sorted(views, key=lambda v: _id_key(v.view_id))


def group_views_by_pose(views) -> dict[str, list[View]]:
    """Views per pose id, poses in id order, views of a pose sorted by image path."""
    groups = {}
    for v in views:
        groups.setdefault(v.pose_id, []).append(v)
    return {
        pose: sorted(groups[pose], key=lambda v: v.path)
        for pose in sorted(groups, key=_id_key)
    }


def split_ambient(views) -> tuple[list[str], Optional[str]]:
    """
    Separate the lit pictures of a pose from its ambient-only picture.
    Returns (lit picture paths, ambient path or None); with several ambient pictures the last one is kept.
    """
    lit, ambient = [], None
    for v in views:
        if is_ambient(v.path):
            ambient = v.path
        else:
            lit.append(v.path)
    return lit, ambient


def pose_mask_path(mask_dir, image_path) -> Path:
    """
    Mask of a pose: <mask_dir>/<picture folder name without its 3-character prefix>.png,
    e.g. pictures in .../PS_front/ use <mask_dir>/front.png.
    """
    folder = Path(image_path).parent.name
    return Path(mask_dir) / f"{folder[3:]}.png"
