import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import Config, RobustParams
from .errors import ConfigurationError
from .image_io import list_pictures, save_float_array
from .lights import LightModel, load_light_data
from .mask import NO_MASK, load_mask
from .observations import build_observations_from_files, prepare_observations
from .results import ResultMaps, assemble_maps
from .sfm import group_views_by_pose, is_ambient, load_sfm_views, pose_mask_path, split_ambient
from .solver import solve_normals_albedo
from .visualization import save_mask, save_normals_rgb, save_summary_plot

### Entry points: one pure solve per pose, plus the folder and multi-view drivers that load inputs and write results.

logger = logging.getLogger(__name__)


def solve_images(
    images,
    lights: LightModel,
    mask=NO_MASK,
    ambient=None,
    robust: bool = False,
    factor: int = Config.DEFAULT_DOWNSCALE,
    params: RobustParams = RobustParams(),
) -> ResultMaps:
    """Photometric stereo on decoded HxWx3 float pictures, given in light order."""
    lights.check_against(len(images))
    obs, selection = prepare_observations(images, lights.intensities, mask, factor, ambient)
    output = solve_normals_albedo(obs, lights, robust, params)
    return assemble_maps(output, selection)


def photometric_stereo(
    image_paths,
    lights: LightModel,
    mask=NO_MASK,
    ambient_path=None,
    robust: bool = False,
    factor: int = Config.DEFAULT_DOWNSCALE,
    params: RobustParams = RobustParams(),
) -> ResultMaps:
    """Photometric stereo on the pictures of one pose. Pure: nothing is written."""
    lights.check_against(len(image_paths))
    obs, selection = build_observations_from_files(image_paths, lights.intensities, mask, factor, ambient_path)
    output = solve_normals_albedo(obs, lights, robust, params)
    return assemble_maps(output, selection)


def write_results(maps: ResultMaps, output_dir, prefix: str = "",
                  albedo_format: str = Config.DEFAULT_ALBEDO_FORMAT, plot: bool = False):
    """Write <prefix>normals.png, <prefix>albedo.<fmt> and <prefix>mask.png (plus an optional summary figure)."""
    out = Path(output_dir)
    Config.ensure_dir(out)
    save_normals_rgb(maps.normals, str(out / f"{prefix}normals.png"))
    save_float_array(maps.albedo, str(out / f"{prefix}albedo.{albedo_format}"), format=albedo_format)
    save_mask(maps.mask, str(out / f"{prefix}mask.png"))
    if plot:
        save_summary_plot(maps.normals, maps.albedo, maps.mask, str(out / f"{prefix}summary.png"),
                          title=prefix.rstrip("_") or None)
    logger.info("Wrote results to %s", out.resolve())


def _default_mask_path(light_data: Path) -> Path:
    folder = light_data if light_data.is_dir() else light_data.parent
    return folder / Config.MASK_FILE


def run_folder(
    input_path,
    light_data=None,
    output_path: str = Config.DEFAULT_OUTPUT_DIR,
    mask_path=None,
    hs_order: int = Config.DEFAULT_HS_ORDER,
    remove_ambient: bool = False,
    robust: bool = False,
    factor: int = Config.DEFAULT_DOWNSCALE,
    params: RobustParams = RobustParams(),
    albedo_format: str = Config.DEFAULT_ALBEDO_FORMAT,
    plot: bool = False,
) -> ResultMaps:
    """
    Capture folder: pictures in <input>/PS_Pictures (or <input> itself), light data as a folder
    of text files or a JSON file (defaults to <input>), mask.png beside the light data unless
    an explicit mask is given.
    """
    input_path = Path(input_path)
    picture_folder = input_path / Config.PICTURES_SUBDIR
    if not picture_folder.is_dir():
        picture_folder = input_path
    image_list = list_pictures(picture_folder)
    if not image_list:
        raise ConfigurationError(f"No picture found in '{picture_folder}'")
    logger.info("Found %d pictures in %s", len(image_list), picture_folder)

    light_data = Path(light_data) if light_data else input_path
    lights = load_light_data(light_data, image_list, hs_order)

    if mask_path:
        mask = load_mask(mask_path, required=True)
    else:
        mask = load_mask(_default_mask_path(light_data))

    ambient_path = None
    if remove_ambient:
        candidates = sorted(
            str(f) for f in picture_folder.iterdir()
            if f.suffix.lower() in Config.PICTURE_EXTENSIONS and is_ambient(f)
        )
        if candidates:
            ambient_path = candidates[-1]
        else:
            logger.warning("No ambient picture in %s, ambient light is kept", picture_folder)

    maps = photometric_stereo(image_list, lights, mask, ambient_path, robust, factor, params)
    write_results(maps, output_path, albedo_format=albedo_format, plot=plot)
    return maps


@dataclass
class PoseOutcome:
    pose_id: str
    maps: Optional[ResultMaps] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_sfm(
    sfm_path,
    light_data,
    mask_dir=None,
    output_path: str = Config.DEFAULT_OUTPUT_DIR,
    hs_order: int = Config.DEFAULT_HS_ORDER,
    remove_ambient: bool = False,
    robust: bool = False,
    factor: int = Config.DEFAULT_DOWNSCALE,
    params: RobustParams = RobustParams(),
    albedo_format: str = Config.DEFAULT_ALBEDO_FORMAT,
    plot: bool = False,
) -> list[PoseOutcome]:
    """
    Multi-view scene: one independent solve per pose. A pose whose inputs are broken is
    reported as failed and the remaining poses are still processed.
    """
    if light_data is None:
        raise ConfigurationError("Light data is required for a multi-view scene")
    poses = group_views_by_pose(load_sfm_views(sfm_path))

    outcomes = []
    for pose_id, views in poses.items():
        logger.info("Pose Id: %s", pose_id)
        try:
            image_list, ambient_path = split_ambient(views)
            if not image_list:
                raise ConfigurationError(f"Pose {pose_id} has no lit picture")
            for p in image_list:
                logger.info("  - %s", p)
            if not remove_ambient:
                ambient_path = None

            lights = load_light_data(light_data, image_list, hs_order)
            mask = load_mask(pose_mask_path(mask_dir, image_list[0])) if mask_dir else NO_MASK
            maps = photometric_stereo(image_list, lights, mask, ambient_path, robust, factor, params)
            write_results(maps, output_path, prefix=f"{pose_id}_", albedo_format=albedo_format, plot=plot)
            outcomes.append(PoseOutcome(pose_id, maps))
        except ConfigurationError as e:
            logger.error("Pose %s failed: %s", pose_id, e)
            outcomes.append(PoseOutcome(pose_id, error=str(e)))
    return outcomes


def run(input_path, light_data=None, mask=None, **kwargs):
    """Dispatch on the input: a capture folder or an SfM JSON scene (.sfm / .json)."""
    input_path = Path(input_path)
    if input_path.is_dir():
        return run_folder(input_path, light_data, mask_path=mask, **kwargs)
    if input_path.suffix.lower() in (".sfm", ".json"):
        return run_sfm(input_path, light_data, mask_dir=mask, **kwargs)
    raise ConfigurationError(f"The input '{input_path}' is neither a folder nor an SfM scene")
