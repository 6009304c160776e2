"""
Command line entry point.

    matpipe CONFIG INPUT OUTPUT

Loads the input matrix, builds the pipeline described by CONFIG, applies it
and writes the result to OUTPUT. The output file is only written once the
whole pipeline has succeeded.
"""

import argparse
import logging
import sys

from .buffer import ArenaAllocator, MonotonicArena
from .config import DEFAULT_LOG_LEVEL
from .errors import MatrixError, ResourceUnavailableError
from .io import load_matrix, save_matrix
from .observability import ExecutionProfiler, configure_logging
from .plan import load_pipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matpipe",
        description="Apply a configured sequence of matrix operations to an input matrix"
    )
    parser.add_argument(
        "config",
        help="Configuration file: one '<operation> <matrix file>' per line"
    )
    parser.add_argument(
        "input",
        help="Input matrix file"
    )
    parser.add_argument(
        "output",
        help="Output matrix file"
    )
    parser.add_argument(
        "--operand-dir",
        default=None,
        help="Directory relative operand paths are resolved against (default: working directory)"
    )
    parser.add_argument(
        "--arena-bytes",
        type=int,
        default=None,
        help="Load input and operand matrices into a fixed arena of this many bytes"
    )
    parser.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Console logging level (default: {DEFAULT_LOG_LEVEL})"
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write a detailed log to this file"
    )
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Print per-operation timings after the run"
    )
    parser.add_argument(
        "--profile-json",
        default=None,
        help="Save per-operation timings to this JSON file"
    )
    return parser


def run(args) -> None:
    """Execute one pipeline run described by parsed arguments."""
    allocator = None
    if args.arena_bytes is not None:
        if args.arena_bytes < 0:
            raise ValueError("--arena-bytes must be non-negative")
        allocator = ArenaAllocator(MonotonicArena(args.arena_bytes))

    input_matrix = load_matrix(args.input, allocator=allocator)
    logger.info("Input matrix %s from '%s'", input_matrix.shape, args.input)

    pipeline = load_pipeline(args.config, base_dir=args.operand_dir, allocator=allocator)

    profiler = ExecutionProfiler() if (args.profile or args.profile_json) else None
    result = pipeline(input_matrix, profiler=profiler)

    # The profile is exported first so a failed export leaves no output file
    if profiler is not None and args.profile_json:
        try:
            profiler.save_json(args.profile_json)
        except OSError as exc:
            raise ResourceUnavailableError(
                f"Cannot write profile '{args.profile_json}': {exc.strerror}"
            ) from exc

    save_matrix(args.output, result)
    logger.info("Wrote result %s to '%s'", result.shape, args.output)

    if profiler is not None and args.profile:
        print(profiler.format_summary(), file=sys.stderr)


def main(argv=None) -> int:
    """
    Parse ``argv`` and run the pipeline.

    Returns:
        0 on success, 1 if the run failed. Usage errors exit with status 2
        from argparse before any file is opened.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        run(args)
    except (MatrixError, ValueError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
