"""Command line interface for the basis normal / QLog normal converter."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .core import config
from .core.config import ConfigurationError, ConversionConfig
from .core.utils_io import DecodeError, EncodeError

LOGGER = logging.getLogger("normal_qlog.main_convert")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

DERIVE_Z_INVERSE_WARNING = (
    "deriveZ has no effect when converting from Quaternion Logarithm Maps to Basis Vector Maps"
)


def _configure_logging(log_path: Optional[Path], verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8", delay=True)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    logging.basicConfig(level=level, handlers=handlers)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="normal-qlog",
        description="Convert from a Basis Vector Normal to a Quaternion Logarithm Normal (or back with -i)",
        usage="%(prog)s [options] inputfile outputfile",
    )
    parser.add_argument("files", nargs="*", type=Path, metavar="FILE", help="Input file followed by output file")
    parser.add_argument(
        "-i",
        "--inverse",
        action="store_true",
        help="Convert from a Quaternion Logarithm Normal to a Basis Vector Normal",
    )
    parser.add_argument(
        "-deriveZ",
        "--derive-z",
        dest="derive_z",
        action="store_true",
        help=(
            "Calculate the Z channel of the basis normal from the XY values "
            "(only applies to conversion from Basis Vector Normal to Quaternion Logarithm Normal)"
        ),
    )
    parser.add_argument(
        "-bias",
        "--bias",
        type=float,
        default=config.BIAS,
        help=(
            "Bias for bit precision on the angle from the normal. Positive values bias precision "
            "towards the normal, negative values away from it (default: 0, linear precision)"
        ),
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=config.THREADS,
        help="Number of worker threads (default: 0, one per core)",
    )
    parser.add_argument(
        "--rows-per-task",
        type=int,
        default=config.ROWS_PER_TASK,
        help="Image rows converted by each worker task",
    )
    parser.add_argument(
        "--bit-depth",
        type=int,
        choices=config.SUPPORTED_BIT_DEPTHS,
        default=config.BIT_DEPTH,
        help="Sample depth for integer output formats; 16 applies to PNG and TIFF",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Convert the result back and report the round-trip error",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write log messages to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_intermixed_args(argv)


def build_runtime_config(args: argparse.Namespace) -> Tuple[ConversionConfig, Path, Path]:
    """Validate parsed arguments and return the config plus input/output paths."""

    files = list(args.files)
    if len(files) != 2:
        raise ConfigurationError("Must have exactly one input and one output filename specified.")

    overrides: Dict[str, object] = {
        "direction": config.DIRECTION_INVERSE if args.inverse else config.DIRECTION_FORWARD,
        "derive_z": args.derive_z,
        "bias": args.bias,
        "threads": args.threads,
        "rows_per_task": args.rows_per_task,
        "bit_depth": args.bit_depth,
        "verify": args.verify,
        "log_file": args.log_file,
    }
    cfg = config.build_config(overrides)
    if cfg.derive_z and cfg.inverse:
        LOGGER.warning(DERIVE_Z_INVERSE_WARNING)
    return cfg, files[0], files[1]


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.log_file, args.verbose)

    try:
        cfg, input_path, output_path = build_runtime_config(args)
    except ConfigurationError as exc:
        LOGGER.error("normal-qlog: %s", exc)
        build_parser().print_usage(sys.stderr)
        return EXIT_FAILURE

    from .modules.qlog import convert_file

    try:
        report = convert_file(input_path, output_path, cfg)
    except (DecodeError, EncodeError) as exc:
        LOGGER.error("normal-qlog %s", exc)
        return EXIT_FAILURE
    except ValueError as exc:
        LOGGER.error("normal-qlog ERROR converting \"%s\" : %s", input_path, exc)
        return EXIT_FAILURE

    if report.pole_pixels:
        LOGGER.debug("%d pixel(s) sat on the pole singularity", report.pole_pixels)
    return EXIT_SUCCESS


if __name__ == "__main__":
    raise SystemExit(main())
