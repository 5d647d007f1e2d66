"""Command-line entry point for Annotator TFR."""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from .core.config import DEFAULT_CONFIG_PATH, ConfigManager
from .core.context import LabelingContext
from .core.exceptions import AnnotatorError
from .core.image_source import ID_STRATEGIES, ImageSource
from .core.label_map import LabelMap

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="annotator-tfr",
        description="Label images with bounding boxes and export TFRecord files",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    labels = subparsers.add_parser("labels", help="Print the classes of a label map")
    labels.add_argument("label_map", type=Path, help="Path to a .pbtxt label map")

    scan = subparsers.add_parser("scan", help="List images awaiting labels with their ids")
    scan.add_argument("directory", type=Path, help="Directory of JPEG images")

    config = subparsers.add_parser("config", help="Show or change the saved configuration")
    config.add_argument("--data-directory", help="Directory holding images/ and annotations/")
    config.add_argument("--image-directory", help="Directory of images awaiting labels")
    config.add_argument("--label-map", dest="label_map_path", help="Path to a .pbtxt label map")
    config.add_argument(
        "--id-strategy",
        dest="image_id_strategy",
        choices=ID_STRATEGIES,
        help="How image ids are derived"
    )
    config_split = config.add_mutually_exclusive_group()
    config_split.add_argument("--split", dest="split_ratio", type=float, help="Default train fraction")
    config_split.add_argument(
        "--no-split",
        action="store_true",
        help="Export to a single output by default"
    )

    export = subparsers.add_parser("export", help="Export labeled images to record files")
    export.add_argument(
        "directory",
        type=Path,
        nargs="?",
        help="Data directory with images/ and annotations/ (default: from config)"
    )
    split_group = export.add_mutually_exclusive_group()
    split_group.add_argument(
        "--split",
        type=float,
        default=None,
        help="Fraction of examples routed to the train output (default: from config)"
    )
    split_group.add_argument(
        "--no-split",
        action="store_true",
        help="Write every example to a single output"
    )
    export.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the train/eval draw"
    )

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """
    Run a command.

    Returns:
        Exit code
    """
    args = create_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == "labels":
            label_map = LabelMap.load_file(args.label_map)
            for class_id, name in label_map.items():
                print(f"{class_id}: {name}")
            return 0

        manager = ConfigManager(args.config)
        config = manager.config

        if args.command == "config":
            changes = {
                key: getattr(args, key)
                for key in ("data_directory", "image_directory", "label_map_path",
                            "image_id_strategy", "split_ratio")
                if getattr(args, key) is not None
            }
            if args.no_split:
                changes["split_ratio"] = None
            if changes and not manager.update(**changes):
                return 1
            print(yaml.safe_dump(manager.config.to_dict(), sort_keys=False), end="")
            return 0

        if args.command == "scan":
            for image in ImageSource(args.directory, config.image_id_strategy).stream():
                print(f"{image.id}  {image.width}x{image.height}  {image.source_path.name}")
            return 0

        if args.command == "export":
            if args.no_split:
                split_ratio = None
            elif args.split is not None:
                split_ratio = args.split
            else:
                split_ratio = config.split_ratio

            rng = random.Random(args.seed) if args.seed is not None else None
            context = LabelingContext(config)
            summary = context.export(args.directory, split_ratio, rng)
            print(summary.summary())
            return 0

    except AnnotatorError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        return 2

    return 1


def main() -> None:
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
