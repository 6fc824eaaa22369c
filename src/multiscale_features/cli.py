"""
Command line entry point: compute multiscale features for a point cloud
and write them to CSV.
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .acceleration import ParallelExecutor
from .features import compute_scales, get_features, write_features_csv
from .pointset import read_point_set
from .utils.config import AppConfig, load_config
from .utils.logging import PACKAGE_LOGGER, setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multiscale-features",
        description="Compute multiscale point features from a LAS/LAZ point cloud",
    )
    parser.add_argument("input", type=str, help="Input point cloud (.las/.laz)")
    parser.add_argument("output", type=str, help="Output CSV file")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to the packaged default.yaml)",
    )
    parser.add_argument("--num-scales", type=int, default=None, help="Number of feature levels")
    parser.add_argument("--start-resolution", type=float, default=None, help="Voxel size of the finest level")
    parser.add_argument("--radius", type=float, default=None, help="Colour averaging radius")
    parser.add_argument("--k-neighbors", type=int, default=None, help="Neighbours per shape descriptor (>= 2)")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker processes (defaults to the config value, 1 when parallel.enabled is false)",
    )
    parser.add_argument(
        "--save-base",
        type=str,
        default=None,
        help="Optional LAS/LAZ path to save the finest working set to",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a validated copy of cfg with command line values applied."""
    raw = cfg.model_dump()
    features = raw["features"]
    if args.num_scales is not None:
        features["num_scales"] = args.num_scales
    if args.start_resolution is not None:
        features["start_resolution"] = args.start_resolution
    if args.radius is not None:
        features["radius"] = args.radius
    if args.k_neighbors is not None:
        features["k_neighbors"] = args.k_neighbors
    if args.workers is not None:
        raw["parallel"]["n_workers"] = args.workers
        raw["parallel"]["enabled"] = args.workers > 1
    if args.log_level is not None:
        raw["logging"]["level"] = args.log_level
    return AppConfig.model_validate(raw)


def run(cfg: AppConfig, input_path: str, output_path: str, save_base: Optional[str] = None) -> str:
    logger = logging.getLogger(PACKAGE_LOGGER)
    fc = cfg.features

    point_set = read_point_set(input_path)
    logger.info(f"Starting resolution: {fc.start_resolution}")

    n_workers = cfg.parallel.n_workers if cfg.parallel.enabled else 1
    executor = ParallelExecutor(n_workers=n_workers)

    start = time.time()
    scales = compute_scales(
        fc.num_scales,
        point_set,
        fc.start_resolution,
        fc.radius,
        k_neighbors=fc.k_neighbors,
        executor=executor,
        chunk_points=cfg.parallel.chunk_points,
    )
    logger.info(f"Computed {len(scales)} scales in {time.time() - start:.1f}s")

    if save_base:
        scales[0].save(save_base)

    features = get_features(scales)
    logger.info(f"Features: {len(features)}")
    return write_features_csv(features, output_path, point_set)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = apply_overrides(load_config(args.config, allow_missing=args.config is None), args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger = setup_logger(PACKAGE_LOGGER, level=cfg.logging.level, log_file=cfg.logging.file)

    try:
        run(cfg, args.input, args.output, save_base=args.save_base)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
