"""
Pipeline Orchestration & Command Line
=====================================
This module wires the loader, the PCA engine and the writer into one run.

Why is this file needed?
------------------------
It acts as the composition root. It:
1. Turns command line arguments (and an optional JSON file) into a PipelineConfig.
2. Runs: discover -> load -> PCA -> reprojection -> write.
3. Maps fatal errors to a non-zero exit code after logging them.
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, TYPE_CHECKING

from shapemodel.analysis.ensemble import EnsembleBatch, EnsembleLoader
from shapemodel.analysis.pca import PCA
from shapemodel.config import (
    DEFAULT_EXTENSION_PATTERN,
    DEFAULT_INPUT_DIR,
    DEFAULT_NUM_COMPONENTS,
    OUTPUT_FILENAME,
    OUTPUT_SUBDIR,
    PipelineConfig,
)
from shapemodel.errors import ShapeModelError
from shapemodel.logging_config import setup_logging
from shapemodel.model.io import MeshIO, ModelStore
from shapemodel.model.pca_model import PCAModel
from shapemodel.post.spectrum import log_summary, plot_spectrum
from shapemodel.post.writer import ResultWriter

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt

logger = logging.getLogger(__name__)

USAGE_BANNER = (
    "Usage            : shapemodel <dir> [options]\n"
    f"Default          : shapemodel {DEFAULT_INPUT_DIR}"
)

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class PipelineResult:
    """Return object of a successful run."""
    output_path: Path
    batch: EnsembleBatch
    model: PCAModel
    reprojection: npt.NDArray[np.float64]
    num_components_used: int


def run_pipeline(config: PipelineConfig, mesh_io: Optional[MeshIO] = None) -> PipelineResult:
    """
    Execute one shape model run.

    Raises:
        DiscoveryError: input directory missing or unreadable.
        EmptyBatchError: no file found or none accepted.
        SerializationError: the output mesh could not be written.
    """
    config.validate()
    mesh_io = mesh_io if mesh_io is not None else MeshIO()

    # 1. Load the ensemble
    loader = EnsembleLoader(reader=mesh_io, extension_pattern=config.extension_pattern)
    batch = loader.load(config.input_dir)
    logger.info(f"Observation matrix: {batch.matrix.shape[0]} x {batch.accepted_count}")

    # 2. PCA
    pca = PCA()
    pca.set_input(batch.matrix)
    model = pca.compute()
    log_summary(model)

    # 3. Reprojection of the first accepted mesh
    k = model.clamp_components(config.num_components)
    if k < config.num_components:
        logger.warning(f"Requested {config.num_components} components, using the {k} available.")
    result = pca.reprojection(config.num_components)

    # 4. Outputs
    writer = ResultWriter(config.resolved_output_path, mesh_io=mesh_io)
    output_path = writer.write(result, batch.last_record)

    if config.model_path is not None:
        ModelStore.save(model, config.model_path)
    if config.spectrum_path is not None:
        plot_spectrum(model, config.spectrum_path)

    return PipelineResult(
        output_path=output_path,
        batch=batch,
        model=model,
        reprojection=result,
        num_components_used=k,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shapemodel",
        description="Statistical shape model (PCA) of point-correspondent meshes.",
    )
    parser.add_argument(
        "input_dir", nargs="?", default=None,
        help=f"Directory with the input meshes (default: {DEFAULT_INPUT_DIR})",
    )
    parser.add_argument(
        "-k", "--num-components", type=int, default=None,
        help=f"Number of leading modes used for the reconstruction (default: {DEFAULT_NUM_COMPONENTS})",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=None,
        help=f"Output mesh (default: <input_dir>/{OUTPUT_SUBDIR}/{OUTPUT_FILENAME})",
    )
    parser.add_argument(
        "--pattern", default=None,
        help=f"Regex matched against file extensions (default: {DEFAULT_EXTENSION_PATTERN})",
    )
    parser.add_argument("--model", type=Path, default=None, help="Also save the PCA model to this .h5 file")
    parser.add_argument("--spectrum", type=Path, default=None, help="Also save a scree plot to this image file")
    parser.add_argument("--config", type=Path, default=None, help="JSON file with pipeline settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """Command line values override the JSON file, which overrides the defaults."""
    overrides = dict(
        input_dir=args.input_dir,
        num_components=args.num_components,
        output_path=args.output,
        extension_pattern=args.pattern,
        model_path=args.model,
        spectrum_path=args.spectrum,
        log_level=logging.DEBUG if args.verbose else None,
        log_file=args.log_file,
    )
    if args.config is not None:
        return PipelineConfig.from_json(args.config, **overrides)
    return PipelineConfig().with_overrides(**overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    print(USAGE_BANNER, end="\n\n")

    try:
        config = config_from_args(args).validate()
    except (OSError, ValueError) as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    setup_logging(level=config.log_level, log_file=str(config.log_file) if config.log_file else None)

    try:
        result = run_pipeline(config)
    except ShapeModelError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FAILURE

    logger.info(f"Done. Output: {result.output_path}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
