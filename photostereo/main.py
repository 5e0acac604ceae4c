import argparse
import logging
import sys

from .config import Config, RobustParams
from .errors import ConfigurationError
from .pipeline import run

logger = logging.getLogger("photostereo")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Photometric stereo: normal and albedo maps from pictures under known lights")
    parser.add_argument("--input", "-i", required=True, help="Capture folder, or SfM JSON scene (.sfm/.json) for multi-view")
    parser.add_argument("--light-data", "-l", default=None, help="Light folder (text files) or JSON light file; defaults to the input folder")
    parser.add_argument("--mask", "-m", default=None, help="Mask file (folder mode) or mask folder (multi-view)")
    parser.add_argument("--output", "-o", default=Config.DEFAULT_OUTPUT_DIR, help="Output directory")
    parser.add_argument("--hs-order", type=int, choices=(0, 2), default=Config.DEFAULT_HS_ORDER,
                        help="Lighting model: 0 = directional, 2 = 2nd order spherical harmonics")
    parser.add_argument("--remove-ambient", action="store_true", help="Subtract the ambient-only picture")
    parser.add_argument("--robust", action="store_true", help="Outlier-robust estimation")
    parser.add_argument("--downscale", "-d", type=int, default=Config.DEFAULT_DOWNSCALE, help="Downscale factor for faster results")
    parser.add_argument("--mu", type=float, default=Config.ROBUST_MU, help="Robust penalty weight")
    parser.add_argument("--epsilon", type=float, default=Config.ROBUST_EPSILON, help="Robust convergence tolerance")
    parser.add_argument("--max-iterations", type=int, default=Config.ROBUST_MAX_ITERATIONS, help="Robust iteration budget")
    parser.add_argument("--albedo-format", choices=("exr", "pfm", "npy"), default=Config.DEFAULT_ALBEDO_FORMAT,
                        help="Float format of the albedo map")
    parser.add_argument("--plot", action="store_true", help="Also save a summary figure")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    logging.captureWarnings(True)

    logger.info("Input: %s", args.input)
    logger.info("Output directory: %s", args.output)

    params = RobustParams(mu=args.mu, epsilon=args.epsilon, max_iterations=args.max_iterations)
    try:
        result = run(
            args.input,
            light_data=args.light_data,
            mask=args.mask,
            output_path=args.output,
            hs_order=args.hs_order,
            remove_ambient=args.remove_ambient,
            robust=args.robust,
            factor=args.downscale,
            params=params,
            albedo_format=args.albedo_format,
            plot=args.plot,
        )
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    if isinstance(result, list):
        failed = [o.pose_id for o in result if not o.ok]
        logger.info("Processed %d poses, %d failed", len(result), len(failed))
        return 1 if failed else 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
