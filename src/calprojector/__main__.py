"""Command-line interface."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from calprojector.config import (
    DEFAULT_MODEL,
    DEFAULT_PROJECTIONS,
    DEFAULT_RESOLUTION,
    PROJECTION_CHOICES,
    RESOLUTION_CHOICES,
    get_output_dir,
)
from calprojector.controller.pipeline import run_generation
from calprojector.controller.substrate import SUBSTRATES, make_substrate
from calprojector.errors import CALProjectorError, ComputeSubstrateError
from calprojector.logging_config import setup_logging
from calprojector.model.io import IOManager
from calprojector.model.state import GenerationConfig, ModelType

logger = logging.getLogger("calprojector.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="calprojector",
        description="Generate CAL projection images for a test model or a mesh.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--model",
        choices=[m.value for m in ModelType if m != ModelType.CUSTOM],
        default=DEFAULT_MODEL,
        help="Built-in test model (default: %(default)s).",
    )
    source.add_argument("--mesh", type=Path, help="Mesh file (STL, OBJ, PLY, ...) to voxelize.")
    parser.add_argument(
        "--resolution", type=int, choices=RESOLUTION_CHOICES, default=DEFAULT_RESOLUTION,
        help="Volume size N (default: %(default)s).",
    )
    parser.add_argument(
        "--projections", type=int, choices=PROJECTION_CHOICES, default=DEFAULT_PROJECTIONS,
        metavar="M", help="Number of projection angles, a multiple of 36 up to 720 (default: %(default)s).",
    )
    parser.add_argument(
        "--substrate", choices=sorted(SUBSTRATES), default="numba",
        help="Compute backend (default: %(default)s).",
    )
    parser.add_argument("--archive", type=Path, help="PNG archive to write (default: derived from the run).")
    parser.add_argument("--hdf5", type=Path, help="Also store the projection set in this HDF5 file.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", help="Write the log to this file as well.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level), args.log_file)

    source = None
    model = ModelType(args.model)
    try:
        if args.mesh is not None:
            source = IOManager.load_mesh(str(args.mesh))
            model = ModelType.CUSTOM
    except (OSError, CALProjectorError) as e:
        logger.error(f"Could not load mesh: {e}")
        return 1

    config = GenerationConfig(
        resolution=args.resolution,
        projection_count=args.projections,
        model=model,
    )

    def report(fraction: float, message: str) -> None:
        logger.info(f"[{fraction:6.1%}] {message}")

    try:
        projections = run_generation(
            config,
            source=source,
            substrate=make_substrate(args.substrate),
            progress=report,
            checkpoint_every=None,
        )
    except ComputeSubstrateError as e:
        logger.error(f"{e.user_message} ({e})")
        return 1
    except CALProjectorError as e:
        logger.error(str(e))
        return 1

    archive = args.archive or get_output_dir() / IOManager.archive_name(config)
    try:
        IOManager.export_png_archive(projections, str(archive))
        if args.hdf5 is not None:
            IOManager.save_projection_set(projections, str(args.hdf5), config=config)
    except OSError as e:
        logger.error(f"Export failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
