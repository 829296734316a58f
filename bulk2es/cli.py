"""Command line entry point: bulk2es INPUT_DIR --config CONFIG."""
import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from bulk2es import __version__
from bulk2es.bulk_load import run
from bulk2es.errors import Bulk2EsError

logger = logging.getLogger("bulk2es")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level_name: Optional[str] = None) -> int:
    """Configure root logging from LOG_LEVEL (default INFO). Returns the level used."""
    name = (level_name or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # Client libraries log every request at INFO
    if level > logging.DEBUG:
        for noisy in ("elasticsearch", "elastic_transport"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return level


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {value}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bulk2es",
        description="Load NDJSON files into Elasticsearch with the bulk API.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Prints version information.",
    )
    parser.add_argument(
        "input_dir",
        metavar="INPUT_DIR",
        help="The directory where NDJSON files are. Only *.json files are loaded.",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        required=True,
        help="The config yaml file for elasticsearch.",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=None,
        help="Number of files loaded in parallel (default: CPU count).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when any file failed to load.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    load_dotenv()
    setup_logging()

    try:
        summary = run(args.input_dir, args.config, workers=args.workers)
    except Bulk2EsError as e:
        logger.error("%s", e)
        sys.exit(1)

    if summary.failed_files:
        for path in summary.failed_files:
            logger.warning("not loaded: %s", path)
        if args.strict:
            logger.error("%d files failed to load", len(summary.failed_files))
            sys.exit(1)
    logger.info("done")


if __name__ == "__main__":
    main()
