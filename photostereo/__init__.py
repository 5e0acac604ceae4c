from .config import Config, RobustParams
from .errors import ConfigurationError, DegenerateInputWarning, NonConvergenceNotice
from .lights import LightModel, load_light_data, load_light_folder, load_light_json
from .mask import Mask, NoMask, NO_MASK, PixelSelection, as_mask, load_mask, select_pixels
from .observations import ObservationMatrices, build_observations, build_observations_from_files, prepare_observations
from .solver import shrink, median, robust_refine, solve_normals_albedo, SolverOutput
from .results import ResultMaps, assemble_maps, scatter_columns
from .pipeline import solve_images, photometric_stereo, run, run_folder, run_sfm, write_results, PoseOutcome
